import importlib.util
import os
from datetime import datetime, timezone

import pytest

from petbook.domain.exceptions import StoreUnavailable
from petbook.domain.models import OwnerKind, OwnershipRecord, OwnershipStatus, RecordCriteria

SCRIPT_PATH = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
                           'scripts', 'ownership_admin.py')


@pytest.fixture(scope='module')
def admin():
    module_spec = importlib.util.spec_from_file_location('ownership_admin', SCRIPT_PATH)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


def test_current_prints_owner(admin, ledger, capsys):
    ledger.create_initial_ownership('p1', 'u1', OwnerKind.INDIVIDUAL)

    assert admin.main(['current', 'p1'], ledger=ledger) == 0
    assert capsys.readouterr().out.strip() == 'p1: individual u1'


def test_current_for_unknown_pet_fails(admin, ledger, capsys):
    assert admin.main(['current', 'ghost'], ledger=ledger) == 1
    assert 'ghost' in capsys.readouterr().err


def test_history_lists_records(admin, ledger, clock, capsys):
    ledger.create_initial_ownership('p1', 'u1', OwnerKind.INDIVIDUAL)
    clock.advance(days=1)
    ledger.transfer('p1', 'o1', OwnerKind.ORGANIZATION, 'rescue')

    assert admin.main(['history', 'p1'], ledger=ledger) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == 'Ownership history for p1:'
    assert 'organization o1' in lines[1]
    assert 'individual u1' in lines[2]
    assert '(rescue)' in lines[2]


def test_transfer_dry_run_changes_nothing(admin, ledger, capsys):
    ledger.create_initial_ownership('p1', 'u1', OwnerKind.INDIVIDUAL)

    assert admin.main(['transfer', 'p1', '--to-org', 'o1', '--reason', 'surrender', '--dry-run'],
                      ledger=ledger) == 0
    assert 'DRY RUN' in capsys.readouterr().out
    assert ledger.get_current_owner('p1').owner_id == 'u1'


def test_transfer_moves_pet(admin, ledger, capsys):
    ledger.create_initial_ownership('p1', 'u1', OwnerKind.INDIVIDUAL)

    assert admin.main(['transfer', 'p1', '--to-user', 'u2', '--reason', 'sale'], ledger=ledger) == 0
    assert 'Transferred p1 to individual u2' in capsys.readouterr().out
    assert ledger.get_current_owner('p1').owner_id == 'u2'


def test_transfer_rejects_unknown_reason(admin, ledger):
    with pytest.raises(SystemExit):
        admin.main(['transfer', 'p1', '--to-user', 'u2', '--reason', 'theft'], ledger=ledger)


def test_verify_reports_clean_and_broken_pets(admin, ledger, store, capsys):
    ledger.create_initial_ownership('p1', 'u1', OwnerKind.INDIVIDUAL)
    with store.transaction() as tx:
        for owner in ('u2', 'u3'):
            tx.insert(OwnershipRecord(pet_id='p2', owner_id=owner, owner_kind=OwnerKind.INDIVIDUAL,
                                      status=OwnershipStatus.CURRENT,
                                      start_date=datetime(2024, 1, 1, tzinfo=timezone.utc)))

    assert admin.main(['verify', 'p1'], ledger=ledger) == 0
    assert capsys.readouterr().out.strip() == 'p1: ok'

    assert admin.main(['verify', 'p1', 'p2'], ledger=ledger) == 1
    out = capsys.readouterr().out
    assert 'p1: ok' in out
    assert 'expected exactly one current record, found 2' in out


def test_transfer_dry_run_rejects_self_transfer(admin, ledger, capsys):
    ledger.create_initial_ownership('p1', 'u1', OwnerKind.INDIVIDUAL)

    assert admin.main(['transfer', 'p1', '--to-user', 'u1', '--reason', 'gift', '--dry-run'],
                      ledger=ledger) == 1
    captured = capsys.readouterr()
    assert 'DRY RUN' not in captured.out
    assert 'already owned by u1' in captured.err


def test_transfer_dry_run_allows_same_id_other_kind(admin, ledger, capsys):
    ledger.create_initial_ownership('p1', 'x', OwnerKind.INDIVIDUAL)

    assert admin.main(['transfer', 'p1', '--to-org', 'x', '--reason', 'surrender', '--dry-run'],
                      ledger=ledger) == 0
    assert 'to organization x' in capsys.readouterr().out


def test_main_closes_the_store_it_builds(admin, store, monkeypatch):
    monkeypatch.setattr(admin, 'build_store', lambda config: store)

    assert admin.main(['--store', 'memory', 'verify', 'p1']) == 0

    with pytest.raises(StoreUnavailable):
        with store.transaction(read_only=True):
            pass


def test_main_leaves_injected_ledger_open(admin, ledger, store):
    assert admin.main(['verify', 'p1'], ledger=ledger) == 0
    with store.transaction(read_only=True) as tx:
        assert tx.query_matching(RecordCriteria()) == []
