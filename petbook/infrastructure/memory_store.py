"""
In-process ownership store.

Keeps records in a dict and gives each transaction a private working copy.
Read-write transactions are serialized on a lock held from begin to commit or
rollback; read-only transactions see the last committed snapshot.
"""

import logging
import threading
import uuid
from dataclasses import replace
from contextlib import contextmanager
from typing import Dict, List, Optional, Generator

from ..domain.exceptions import StoreUnavailable
from ..domain.models import OwnershipRecord, RecordCriteria
from ..domain.repositories import OwnershipStore, StoreTransaction

logger = logging.getLogger(__name__)


class MemoryTransaction(StoreTransaction):
    """Working copy of the store's records for one transaction."""

    def __init__(self, records: Dict[str, OwnershipRecord], read_only: bool):
        self.records = records
        self.read_only = read_only

    def _check_writable(self, operation: str):
        if self.read_only:
            raise StoreUnavailable(f"Cannot {operation} inside a read-only transaction")

    def insert(self, record: OwnershipRecord) -> OwnershipRecord:
        self._check_writable("insert")
        if record.record_id is None:
            record = replace(record, record_id=uuid.uuid4().hex)
        if record.record_id in self.records:
            raise StoreUnavailable(f"Duplicate record id {record.record_id}", record.pet_id)
        self.records[record.record_id] = record
        return record

    def delete_matching(self, criteria: RecordCriteria) -> int:
        self._check_writable("delete")
        doomed = [rid for rid, rec in self.records.items() if criteria.matches(rec)]
        for rid in doomed:
            del self.records[rid]
        return len(doomed)

    def query_matching(self, criteria: RecordCriteria) -> List[OwnershipRecord]:
        return [rec for rec in self.records.values() if criteria.matches(rec)]


class InMemoryOwnershipStore(OwnershipStore):
    """Dict-backed OwnershipStore with snapshot transactions."""

    transaction_class = MemoryTransaction

    def __init__(self, records: Optional[List[OwnershipRecord]] = None):
        self._records: Dict[str, OwnershipRecord] = {}
        self._lock = threading.Lock()  # guards _records swaps
        self._write_lock = threading.Lock()  # one writer at a time
        self._closed = False
        for record in records or []:
            rid = record.record_id or uuid.uuid4().hex
            self._records[rid] = replace(record, record_id=rid)

    def _snapshot(self) -> Dict[str, OwnershipRecord]:
        with self._lock:
            return dict(self._records)

    @contextmanager
    def transaction(self, read_only: bool = False) -> Generator[StoreTransaction, None, None]:
        if self._closed:
            raise StoreUnavailable("Ownership store is closed")

        if read_only:
            yield self.transaction_class(self._snapshot(), read_only=True)
            return

        with self._write_lock:
            tx = self.transaction_class(self._snapshot(), read_only=False)
            try:
                yield tx
            except Exception:
                logger.debug("Rolling back in-memory transaction")
                raise
            if self._closed:
                raise StoreUnavailable("Ownership store closed before commit")
            with self._lock:
                self._records = tx.records

    def all_records(self) -> List[OwnershipRecord]:
        """Committed records, for diagnostics and tests."""
        return list(self._snapshot().values())

    def close(self) -> None:
        self._closed = True
