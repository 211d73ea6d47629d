import os
from datetime import datetime, timedelta, timezone

import pytest

os.environ.setdefault('OWNERSHIP_STORE', 'memory')

from config import TestConfig  # noqa: E402
from petbook import create_app  # noqa: E402
from petbook.domain.models import OwnerKind  # noqa: E402
from petbook.domain.repositories import OrganizationManagers, OwnerDirectory  # noqa: E402
from petbook.infrastructure import InMemoryOwnershipStore  # noqa: E402
from petbook.services import OwnershipLedger  # noqa: E402


class SteppingClock:
    """Returns a fixed time that tests advance explicitly."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, when: datetime) -> datetime:
        self.now = when
        return self.now


class StaticDirectory(OwnerDirectory):
    def __init__(self, individuals=(), organizations=()):
        self.known = {(i, OwnerKind.INDIVIDUAL) for i in individuals}
        self.known |= {(o, OwnerKind.ORGANIZATION) for o in organizations}

    def exists(self, owner_id, kind):
        return (owner_id, kind) in self.known


class StaticManagers(OrganizationManagers):
    def __init__(self, managers):
        self.managers = managers

    def can_manage(self, user_id, org_id):
        return user_id in self.managers.get(org_id, ())


@pytest.fixture
def clock():
    return SteppingClock(datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return InMemoryOwnershipStore()


@pytest.fixture
def ledger(store, clock):
    return OwnershipLedger(store, clock=clock)


@pytest.fixture
def app(ledger):
    return create_app(
        TestConfig,
        ledger=ledger,
        identity_loader=lambda req: req.headers.get('X-User-Id'),
        organization_managers=StaticManagers({'o1': {'manager1'}}),
    )


@pytest.fixture
def client(app):
    return app.test_client()
