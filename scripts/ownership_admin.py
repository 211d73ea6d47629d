#!/usr/bin/env python3
"""
Pet Ownership Admin Tool
Inspect, transfer and verify pet ownership against the configured ownership store.

Examples:
    python scripts/ownership_admin.py current p1
    python scripts/ownership_admin.py history p1
    python scripts/ownership_admin.py transfer p1 --to-org o1 --reason surrender
    python scripts/ownership_admin.py verify p1 p2
"""

import os
import sys
import argparse
import logging
from typing import List, Optional

# Add the project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from config import Config  # noqa: E402
from petbook.domain.exceptions import OwnershipError, SelfTransfer  # noqa: E402
from petbook.domain.models import Owner, OwnerKind, VALID_REASONS  # noqa: E402
from petbook.infrastructure import build_store  # noqa: E402
from petbook.services import OwnershipLedger  # noqa: E402

logger = logging.getLogger(__name__)


def show_current(ledger: OwnershipLedger, pet_id: str) -> int:
    owner = ledger.get_current_owner(pet_id)
    print(f"{pet_id}: {owner.kind.value} {owner.owner_id}")
    return 0


def show_history(ledger: OwnershipLedger, pet_id: str) -> int:
    history = ledger.get_history(pet_id)
    if not history:
        print(f"{pet_id}: no ownership records")
        return 0
    print(f"Ownership history for {pet_id}:")
    for record in history:
        data = record.to_dict()
        print(f"  [{data['status']:7}] {data['owner_kind']} {data['owner_id']} "
              f"{data['start_date'] or '?'} -> {data['end_date'] or 'now'} "
              f"({data['transfer_reason'] or 'registered'})")
    return 0


def transfer(ledger: OwnershipLedger, pet_id: str, to_user: Optional[str], to_org: Optional[str],
             reason: str, dry_run: bool = False) -> int:
    """Transfer a pet; with dry_run only report what would change."""
    target_id = to_user or to_org
    kind = OwnerKind.INDIVIDUAL if to_user else OwnerKind.ORGANIZATION
    current = ledger.get_current_owner(pet_id)

    if dry_run:
        if current == Owner(target_id, kind):
            raise SelfTransfer(pet_id, target_id)
        print(f"DRY RUN - would transfer {pet_id} from {current.kind.value} {current.owner_id} "
              f"to {kind.value} {target_id} ({reason})")
        return 0

    record = ledger.transfer(pet_id, target_id, kind, reason, expected_owner=current)
    print(f"Transferred {pet_id} to {record.owner_kind.value} {record.owner_id} ({reason})")
    return 0


def verify(ledger: OwnershipLedger, pet_ids: List[str]) -> int:
    failures = 0
    for pet_id in pet_ids:
        problems = ledger.verify_pet(pet_id)
        if problems:
            failures += 1
            print(f"{pet_id}: {len(problems)} problem(s)")
            for problem in problems:
                print(f"  - {problem}")
        else:
            print(f"{pet_id}: ok")
    return 1 if failures else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Inspect and manage pet ownership')
    sub = parser.add_subparsers(dest='command', required=True)

    current_p = sub.add_parser('current', help='Show the current owner of a pet')
    current_p.add_argument('pet_id')

    history_p = sub.add_parser('history', help='Show the ownership history of a pet')
    history_p.add_argument('pet_id')

    transfer_p = sub.add_parser('transfer', help='Transfer a pet to a new owner')
    transfer_p.add_argument('pet_id')
    target = transfer_p.add_mutually_exclusive_group(required=True)
    target.add_argument('--to-user', help='Individual owner id')
    target.add_argument('--to-org', help='Organization owner id')
    transfer_p.add_argument('--reason', required=True, choices=VALID_REASONS)
    transfer_p.add_argument('--dry-run', action='store_true', help='Show what would happen without changing anything')

    verify_p = sub.add_parser('verify', help='Check ownership invariants for pets')
    verify_p.add_argument('pet_ids', nargs='+')

    parser.add_argument('--store', choices=['kuzu', 'memory'], help='Override OWNERSHIP_STORE')
    return parser


def main(argv: Optional[List[str]] = None, ledger: Optional[OwnershipLedger] = None) -> int:
    args = build_parser().parse_args(argv)

    owns_store = ledger is None
    if owns_store:
        config = {
            'OWNERSHIP_STORE': args.store or Config.OWNERSHIP_STORE,
            'KUZU_DB_PATH': Config.KUZU_DB_PATH,
            'KUZU_SLOW_QUERY_MS': Config.KUZU_SLOW_QUERY_MS,
        }
        ledger = OwnershipLedger(build_store(config))

    try:
        if args.command == 'current':
            return show_current(ledger, args.pet_id)
        if args.command == 'history':
            return show_history(ledger, args.pet_id)
        if args.command == 'transfer':
            return transfer(ledger, args.pet_id, args.to_user, args.to_org, args.reason, args.dry_run)
        return verify(ledger, args.pet_ids)
    except OwnershipError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        # Injected ledgers belong to the caller
        if owns_store:
            ledger.store.close()


if __name__ == '__main__':
    logging.basicConfig(level=getattr(logging, Config.LOG_LEVEL, logging.ERROR))
    sys.exit(main())
