"""
Ownership Ledger Service

Owns every ownership record for every pet. Guarantees a single current owner
per owned pet, performs transfers as one store transaction, and rebuilds the
time-ordered ownership history.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Union, Generator

from ..domain.exceptions import (
    OwnershipError, OwnershipNotFound, AlreadyOwned, SelfTransfer, OwnerChanged, OwnerNotFound,
    StoreUnavailable, PartialTransferFailure,
)
from ..domain.models import (
    Owner, OwnerKind, OwnershipRecord, OwnershipStatus, RecordCriteria, TransferReason,
    coerce_owner_kind, coerce_reason, history_sort_key, now_utc,
)
from ..domain.repositories import OwnershipStore, OwnerDirectory, StoreTransaction

logger = logging.getLogger(__name__)

KindLike = Union[OwnerKind, str]
ReasonLike = Union[TransferReason, str]


class OwnershipLedger:
    """Ownership ledger over an injected OwnershipStore.

    Args:
        store: transactional record store; every call opens its own transaction
        owner_directory: optional lookup used to reject unknown destination owners
        clock: returns the current time; results are truncated to whole seconds
    """

    def __init__(self, store: OwnershipStore, owner_directory: Optional[OwnerDirectory] = None,
                 clock: Callable[[], datetime] = now_utc):
        self.store = store
        self.owner_directory = owner_directory
        self.clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _now(self) -> datetime:
        now = self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(timezone.utc).replace(microsecond=0)

    @contextmanager
    def _transaction(self, operation: str, pet_id: Optional[str] = None,
                     read_only: bool = False) -> Generator[StoreTransaction, None, None]:
        """Run a store transaction, converting store failures into StoreUnavailable."""
        try:
            with self.store.transaction(read_only=read_only) as tx:
                yield tx
        except OwnershipError:
            raise
        except Exception as e:
            logger.error(f"Store failure during {operation} for pet {pet_id}: {e}")
            raise StoreUnavailable(f"Ownership store failed during {operation}", pet_id) from e

    def _integrity_alert(self, pet_id: str, current_count: int, detail: str):
        logger.critical(
            f"DATA INTEGRITY ALERT: pet {pet_id} has {current_count} current ownership records ({detail})"
        )

    def _ensure_owner_exists(self, owner_id: str, kind: OwnerKind):
        if self.owner_directory is None:
            return
        if not self.owner_directory.exists(owner_id, kind):
            raise OwnerNotFound(owner_id, kind)

    def _require_current(self, tx: StoreTransaction, pet_id: str) -> OwnershipRecord:
        """Return the single current record, enforcing the one-current-owner rule."""
        current = tx.query_matching(RecordCriteria(pet_id=pet_id, status=OwnershipStatus.CURRENT))
        if len(current) > 1:
            self._integrity_alert(pet_id, len(current), "multiple current owners")
            raise PartialTransferFailure(pet_id, len(current))
        if not current:
            if tx.query_matching(RecordCriteria(pet_id=pet_id)):
                # Past records without a current one: a transfer was cut in half
                self._integrity_alert(pet_id, 0, "past records but no current owner")
            raise OwnershipNotFound(pet_id)
        return current[0]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def create_initial_ownership(self, pet_id: str, owner_id: str, owner_kind: KindLike) -> OwnershipRecord:
        """Register the first owner of a newly created pet.

        Raises AlreadyOwned if the pet has any ownership record at all.
        """
        kind = coerce_owner_kind(owner_kind)
        self._ensure_owner_exists(owner_id, kind)

        with self._transaction("create_initial_ownership", pet_id) as tx:
            if tx.query_matching(RecordCriteria(pet_id=pet_id)):
                raise AlreadyOwned(pet_id)
            record = tx.insert(OwnershipRecord(
                pet_id=pet_id,
                owner_id=owner_id,
                owner_kind=kind,
                status=OwnershipStatus.CURRENT,
                start_date=self._now(),
            ))

        logger.info(f"Created ownership for pet {pet_id}: {kind.value} {owner_id}")
        return record

    def transfer(self, pet_id: str, new_owner_id: str, new_owner_kind: KindLike,
                 reason: ReasonLike, expected_owner: Optional[Owner] = None) -> OwnershipRecord:
        """Move current ownership of a pet to a new owner.

        Closing the old record and opening the new one happen in a single
        read-write transaction, so a failure leaves the pre-transfer state.
        When expected_owner is given the transfer only proceeds if that owner
        still holds the pet, otherwise OwnerChanged is raised.
        Returns the new current record.
        """
        transfer_reason = coerce_reason(reason)
        kind = coerce_owner_kind(new_owner_kind)
        destination = Owner(new_owner_id, kind)

        with self._transaction("transfer", pet_id) as tx:
            current = self._require_current(tx, pet_id)
            if expected_owner is not None and current.owner != expected_owner:
                raise OwnerChanged(pet_id, expected_owner.owner_id)
            # An individual and an organization may share an id
            if current.owner == destination:
                raise SelfTransfer(pet_id, new_owner_id)
            self._ensure_owner_exists(new_owner_id, kind)

            now = self._now()
            started = current.started_at
            if started is not None and now < started:
                # Clock went backwards; never end an interval before it began
                now = started

            removed = tx.delete_matching(RecordCriteria(
                pet_id=pet_id,
                owner_id=current.owner_id,
                owner_kind=current.owner_kind,
                status=OwnershipStatus.CURRENT,
            ))
            if removed != 1:
                self._integrity_alert(pet_id, removed, "close step removed an unexpected number of records")
                raise PartialTransferFailure(pet_id, removed)

            tx.insert(current.closed(now, transfer_reason))
            new_record = tx.insert(OwnershipRecord(
                pet_id=pet_id,
                owner_id=new_owner_id,
                owner_kind=kind,
                status=OwnershipStatus.CURRENT,
                start_date=now,
                transfer_reason=transfer_reason,
            ))

            after = tx.query_matching(RecordCriteria(pet_id=pet_id, status=OwnershipStatus.CURRENT))
            if len(after) != 1 or after[0].owner_id != new_owner_id:
                self._integrity_alert(pet_id, len(after), "post-transfer check failed, rolling back")
                raise PartialTransferFailure(pet_id, len(after))

        logger.info(
            f"Transferred pet {pet_id} from {current.owner_kind.value} {current.owner_id} "
            f"to {kind.value} {new_owner_id} ({transfer_reason.value})"
        )
        return new_record

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_current_owner(self, pet_id: str) -> Owner:
        """Return the pet's current owner or raise OwnershipNotFound."""
        with self._transaction("get_current_owner", pet_id, read_only=True) as tx:
            return self._require_current(tx, pet_id).owner

    def get_history(self, pet_id: str) -> List[OwnershipRecord]:
        """All ownership records for a pet: current first, then newest start first."""
        with self._transaction("get_history", pet_id, read_only=True) as tx:
            records = tx.query_matching(RecordCriteria(pet_id=pet_id))
        return sorted(records, key=history_sort_key)

    def is_current_owner(self, pet_id: str, owner_id: str, owner_kind: Optional[KindLike] = None) -> bool:
        kind = coerce_owner_kind(owner_kind) if owner_kind is not None else None
        with self._transaction("is_current_owner", pet_id, read_only=True) as tx:
            return bool(tx.query_matching(RecordCriteria(
                pet_id=pet_id, owner_id=owner_id, owner_kind=kind, status=OwnershipStatus.CURRENT,
            )))

    def pets_owned_by(self, owner_id: str, owner_kind: KindLike) -> List[str]:
        """Ids of the pets currently owned by an owner, sorted."""
        kind = coerce_owner_kind(owner_kind)
        with self._transaction("pets_owned_by", read_only=True) as tx:
            records = tx.query_matching(RecordCriteria(
                owner_id=owner_id, owner_kind=kind, status=OwnershipStatus.CURRENT,
            ))
        return sorted({record.pet_id for record in records})

    def count_pets_by_owners(self, owner_ids: Iterable[str], owner_kind: KindLike) -> Dict[str, int]:
        """Current pet count for each owner id; owners with no pets map to 0."""
        kind = coerce_owner_kind(owner_kind)
        ids = list(dict.fromkeys(owner_ids))
        if not ids:
            return {}
        counts = {owner_id: 0 for owner_id in ids}
        with self._transaction("count_pets_by_owners", read_only=True) as tx:
            for owner_id in ids:
                records = tx.query_matching(RecordCriteria(
                    owner_id=owner_id, owner_kind=kind, status=OwnershipStatus.CURRENT,
                ))
                counts[owner_id] = len({record.pet_id for record in records})
        return counts

    def verify_pet(self, pet_id: str) -> List[str]:
        """Audit a pet's records; returns a description of each violation found."""
        history = self.get_history(pet_id)
        if not history:
            return []

        problems = []
        current = [record for record in history if record.is_current]
        if len(current) != 1:
            problems.append(f"expected exactly one current record, found {len(current)}")

        for record in history:
            label = f"record {record.record_id} ({record.owner_kind.value} {record.owner_id})"
            started = record.started_at
            if record.is_current and record.end_date is not None:
                problems.append(f"{label} is current but has an end date")
            if not record.is_current:
                if record.end_date is None:
                    problems.append(f"{label} is past but has no end date")
                elif started is not None and record.end_date < started:
                    problems.append(f"{label} ends before it starts")

        # On equal start times the current record goes last
        dated = sorted(
            (r for r in history if r.started_at is not None),
            key=lambda r: (r.started_at, 1 if r.is_current else 0),
        )
        for earlier, later in zip(dated, dated[1:]):
            if earlier.is_current or (earlier.end_date is not None and earlier.end_date > later.started_at):
                problems.append(
                    f"record {earlier.record_id} overlaps record {later.record_id}"
                )

        if problems:
            logger.warning(f"Pet {pet_id} failed ownership verification: {'; '.join(problems)}")
        return problems
