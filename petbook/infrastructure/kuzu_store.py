"""
Kuzu-backed ownership store.

Graph layout: (Owner)-[:OWNERSHIP]->(Pet). Each OWNERSHIP edge is one
ownership record; owners are keyed by "<kind>:<id>" so an individual and an
organization may share an id without colliding.
"""

import logging
import uuid
from dataclasses import replace
from contextlib import contextmanager, nullcontext
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Tuple, Generator

from ..domain.exceptions import StoreUnavailable
from ..domain.models import (
    OwnershipRecord, RecordCriteria, OwnerKind, OwnershipStatus, TransferReason, parse_timestamp,
)
from ..domain.repositories import OwnershipStore, StoreTransaction
from ..utils.kuzu_manager import KuzuConnectionManager

logger = logging.getLogger(__name__)

_RETURN_COLUMNS = """
RETURN r.record_id, p.id, o.id, o.kind, r.status, r.start_date, r.end_date, r.transfer_reason
"""


def owner_key(owner_id: str, kind: OwnerKind) -> str:
    return f"{kind.value}:{owner_id}"


def _to_kuzu_timestamp(value: Any) -> Optional[datetime]:
    """Kuzu TIMESTAMP columns take naive UTC datetimes."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def _row_values(row: Any) -> List[Any]:
    """Safely convert a Kuzu row to a list of values."""
    if isinstance(row, (list, tuple)):
        return list(row)
    if isinstance(row, dict):
        return list(row.values())
    return [*row]


def _where_clause(criteria: RecordCriteria) -> Tuple[str, Dict[str, Any]]:
    conditions = []
    params: Dict[str, Any] = {}
    if criteria.pet_id is not None:
        conditions.append("p.id = $pet_id")
        params['pet_id'] = criteria.pet_id
    if criteria.owner_id is not None:
        conditions.append("o.id = $owner_id")
        params['owner_id'] = criteria.owner_id
    if criteria.owner_kind is not None:
        conditions.append("o.kind = $owner_kind")
        params['owner_kind'] = criteria.owner_kind.value
    if criteria.status is not None:
        conditions.append("r.status = $status")
        params['status'] = criteria.status.value
    if criteria.record_id is not None:
        conditions.append("r.record_id = $record_id")
        params['record_id'] = criteria.record_id
    if not conditions:
        return "", params
    return "WHERE " + " AND ".join(conditions), params


def _record_from_row(values: List[Any]) -> OwnershipRecord:
    record_id, pet_id, owner_id, kind, status, start_date, end_date, reason = values
    return OwnershipRecord(
        pet_id=pet_id,
        owner_id=owner_id,
        owner_kind=OwnerKind(kind),
        status=OwnershipStatus(status),
        start_date=parse_timestamp(start_date),
        end_date=parse_timestamp(end_date),
        transfer_reason=TransferReason(reason) if reason else None,
        record_id=record_id,
    )


class KuzuTransaction(StoreTransaction):
    """Statements issued on one connection between BEGIN and COMMIT."""

    def __init__(self, manager: KuzuConnectionManager, conn: Any, read_only: bool):
        self.manager = manager
        self.conn = conn
        self.read_only = read_only

    def _execute(self, query: str, params: Optional[Dict[str, Any]] = None, operation: str = "query"):
        return self.manager.execute(self.conn, query, params, operation=operation)

    def _rows(self, result) -> List[List[Any]]:
        rows = []
        if result is None:
            return rows
        while result.has_next():
            rows.append(_row_values(result.get_next()))
        return rows

    def _check_writable(self, operation: str):
        if self.read_only:
            raise StoreUnavailable(f"Cannot {operation} inside a read-only transaction")

    def insert(self, record: OwnershipRecord) -> OwnershipRecord:
        self._check_writable("insert")
        if record.record_id is None:
            record = replace(record, record_id=uuid.uuid4().hex)

        key = owner_key(record.owner_id, record.owner_kind)
        self._execute("MERGE (p:Pet {id: $pet_id})", {'pet_id': record.pet_id}, "merge_pet")
        self._execute(
            """
            MERGE (o:Owner {key: $key})
            ON CREATE SET o.id = $owner_id, o.kind = $owner_kind
            """,
            {'key': key, 'owner_id': record.owner_id, 'owner_kind': record.owner_kind.value},
            "merge_owner",
        )

        # Optional properties are left out of the map rather than bound as null
        properties = {
            'record_id': record.record_id,
            'status': record.status.value,
        }
        start_date = _to_kuzu_timestamp(record.start_date)
        if start_date is not None:
            properties['start_date'] = start_date
        end_date = _to_kuzu_timestamp(record.end_date)
        if end_date is not None:
            properties['end_date'] = end_date
        if record.transfer_reason is not None:
            properties['transfer_reason'] = record.transfer_reason.value

        assignments = ", ".join(f"{name}: $rel_{name}" for name in properties)
        params = {f"rel_{name}": value for name, value in properties.items()}
        params.update({'key': key, 'pet_id': record.pet_id})
        self._execute(
            f"""
            MATCH (o:Owner {{key: $key}}), (p:Pet {{id: $pet_id}})
            CREATE (o)-[:OWNERSHIP {{{assignments}}}]->(p)
            """,
            params,
            "create_ownership",
        )
        return record

    def delete_matching(self, criteria: RecordCriteria) -> int:
        self._check_writable("delete")
        where, params = _where_clause(criteria)
        match = f"MATCH (o:Owner)-[r:OWNERSHIP]->(p:Pet) {where}"
        count_rows = self._rows(self._execute(f"{match} RETURN COUNT(r)", params, "count_ownership"))
        count = int(count_rows[0][0]) if count_rows else 0
        if count:
            self._execute(f"{match} DELETE r", params, "delete_ownership")
        return count

    def query_matching(self, criteria: RecordCriteria) -> List[OwnershipRecord]:
        where, params = _where_clause(criteria)
        result = self._execute(
            f"MATCH (o:Owner)-[r:OWNERSHIP]->(p:Pet) {where} {_RETURN_COLUMNS}",
            params,
            "query_ownership",
        )
        return [_record_from_row(values) for values in self._rows(result)]


class KuzuOwnershipStore(OwnershipStore):
    """OwnershipStore over an embedded Kuzu graph."""

    def __init__(self, manager: Optional[KuzuConnectionManager] = None, database_path: Optional[str] = None):
        self.manager = manager or KuzuConnectionManager(database_path)
        self._closed = False

    def _rollback(self, conn: Any):
        try:
            conn.execute("ROLLBACK")
        except Exception as e:
            logger.error(f"Rollback failed: {e}")

    @contextmanager
    def transaction(self, read_only: bool = False) -> Generator[StoreTransaction, None, None]:
        if self._closed:
            raise StoreUnavailable("Ownership store is closed")

        operation = "read_transaction" if read_only else "write_transaction"
        writer_guard = nullcontext() if read_only else self.manager.write_lock
        with writer_guard:
            with self.manager.get_connection(operation=operation) as conn:
                try:
                    conn.execute("BEGIN TRANSACTION READ ONLY" if read_only else "BEGIN TRANSACTION")
                except Exception as e:
                    raise StoreUnavailable(f"Cannot begin transaction: {e}") from e

                tx = KuzuTransaction(self.manager, conn, read_only)
                try:
                    yield tx
                except BaseException:
                    self._rollback(conn)
                    raise

                try:
                    conn.execute("COMMIT")
                except Exception as e:
                    self._rollback(conn)
                    raise StoreUnavailable(f"Cannot commit transaction: {e}") from e

    def close(self) -> None:
        self._closed = True
        self.manager.close()
