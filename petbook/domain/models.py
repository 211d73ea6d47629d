"""
Domain models for the ownership ledger.

These models represent who owns which pet, independent of persistence concerns.
Each OwnershipRecord is an immutable fact covering one (pet, owner) interval.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, Any, Union
from enum import Enum

from .exceptions import InvalidOwnerKind, InvalidReason


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def now_utc() -> datetime:
    """Timezone-aware UTC now truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


class OwnerKind(Enum):
    """Which side of the owner union an id belongs to."""
    INDIVIDUAL = "individual"
    ORGANIZATION = "organization"


class OwnershipStatus(Enum):
    """Ownership record status."""
    CURRENT = "current"
    PAST = "past"


class TransferReason(Enum):
    """Allowed reasons for moving a pet to a new owner."""
    ADOPTION = "adoption"
    SURRENDER = "surrender"
    RESCUE = "rescue"
    SALE = "sale"
    GIFT = "gift"


VALID_REASONS = tuple(reason.value for reason in TransferReason)


def coerce_owner_kind(value: Union[OwnerKind, str, None]) -> OwnerKind:
    """Accept an OwnerKind or its string value."""
    if isinstance(value, OwnerKind):
        return value
    if isinstance(value, str):
        try:
            return OwnerKind(value.strip().lower())
        except ValueError:
            pass
    raise InvalidOwnerKind(value)


def coerce_reason(value: Union[TransferReason, str, None]) -> TransferReason:
    """Accept a TransferReason or its string value."""
    if isinstance(value, TransferReason):
        return value
    if isinstance(value, str):
        try:
            return TransferReason(value)
        except ValueError:
            pass
    raise InvalidReason(value)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Best-effort conversion of a stored timestamp to an aware UTC datetime.

    Accepts datetimes (naive values are taken as UTC), ISO-8601 strings with
    an optional trailing 'Z', and numeric epochs in seconds or milliseconds.
    Returns None for anything else.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
        if seconds > 10_000_000_000:  # ms
            seconds = seconds / 1000.0
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return parse_timestamp(datetime.fromisoformat(text.replace('Z', '+00:00')))
        except ValueError:
            try:
                return parse_timestamp(float(text))
            except ValueError:
                return None
    return None


@dataclass(frozen=True)
class Owner:
    """One member of the owner union: an individual or an organization."""
    owner_id: str
    kind: OwnerKind

    def to_dict(self) -> dict:
        return {"owner_id": self.owner_id, "owner_kind": self.kind.value}


@dataclass(frozen=True)
class OwnershipRecord:
    """A single (pet, owner) ownership interval.

    ``end_date`` is set iff the record is past. ``transfer_reason`` is set iff
    the record was produced by a transfer. ``start_date`` is normally a
    datetime, but legacy rows may carry an unparseable value, so it is typed
    loosely and read through ``started_at``.
    """
    pet_id: str
    owner_id: str
    owner_kind: OwnerKind
    status: OwnershipStatus
    start_date: Any = None
    end_date: Optional[datetime] = None
    transfer_reason: Optional[TransferReason] = None
    record_id: Optional[str] = field(default=None, compare=False)

    @property
    def owner(self) -> Owner:
        return Owner(self.owner_id, self.owner_kind)

    @property
    def is_current(self) -> bool:
        return self.status is OwnershipStatus.CURRENT

    @property
    def started_at(self) -> Optional[datetime]:
        return parse_timestamp(self.start_date)

    def closed(self, end_date: datetime, reason: TransferReason) -> "OwnershipRecord":
        """Return the past-status replacement for this record."""
        return replace(
            self,
            status=OwnershipStatus.PAST,
            end_date=end_date,
            transfer_reason=reason,
            record_id=None,
        )

    def to_dict(self) -> dict:
        """Convert record to a JSON-friendly dictionary."""
        started = self.started_at
        return {
            "record_id": self.record_id,
            "pet_id": self.pet_id,
            "owner_id": self.owner_id,
            "owner_kind": self.owner_kind.value,
            "status": self.status.value,
            "start_date": started.isoformat() if started else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "transfer_reason": self.transfer_reason.value if self.transfer_reason else None,
        }


@dataclass(frozen=True)
class RecordCriteria:
    """Equality filter over ownership records; None fields match anything."""
    pet_id: Optional[str] = None
    owner_id: Optional[str] = None
    owner_kind: Optional[OwnerKind] = None
    status: Optional[OwnershipStatus] = None
    record_id: Optional[str] = None

    def matches(self, record: OwnershipRecord) -> bool:
        if self.pet_id is not None and record.pet_id != self.pet_id:
            return False
        if self.owner_id is not None and record.owner_id != self.owner_id:
            return False
        if self.owner_kind is not None and record.owner_kind is not self.owner_kind:
            return False
        if self.status is not None and record.status is not self.status:
            return False
        if self.record_id is not None and record.record_id != self.record_id:
            return False
        return True


def history_sort_key(record: OwnershipRecord):
    """Current record first, then newest start date first; unparseable starts sort as epoch 0."""
    started = record.started_at or EPOCH
    return (0 if record.is_current else 1, -started.timestamp())
