"""
Ownership ledger exceptions.

Every error the ledger raises derives from OwnershipError. ``http_status`` is
what the API layer answers with; ``retryable`` marks store-level failures.
"""

from typing import Any, Optional


class OwnershipError(Exception):
    """Base class for ownership ledger failures."""
    http_status = 500
    retryable = False

    def __init__(self, message: str, pet_id: Optional[str] = None):
        self.message = message
        self.pet_id = pet_id
        super().__init__(self.message)


class OwnershipNotFound(OwnershipError):
    """The pet has no current owner (never owned, or deleted)."""
    http_status = 404

    def __init__(self, pet_id: str):
        super().__init__(f"Pet {pet_id} has no current owner", pet_id)


class AlreadyOwned(OwnershipError):
    """Initial ownership requested for a pet that already has records."""
    http_status = 409

    def __init__(self, pet_id: str):
        super().__init__(f"Pet {pet_id} already has ownership records", pet_id)


class SelfTransfer(OwnershipError):
    """Transfer destination is the pet's current owner."""
    http_status = 400

    def __init__(self, pet_id: str, owner_id: str):
        self.owner_id = owner_id
        super().__init__(f"Pet {pet_id} is already owned by {owner_id}", pet_id)


class OwnerChanged(OwnershipError):
    """The pet changed hands after the caller last saw its owner."""
    http_status = 409

    def __init__(self, pet_id: str, expected_owner_id: str):
        self.expected_owner_id = expected_owner_id
        super().__init__(f"Pet {pet_id} is no longer owned by {expected_owner_id}", pet_id)


class InvalidReason(OwnershipError):
    """Transfer reason outside the allowed set."""
    http_status = 400

    def __init__(self, reason: Any):
        from .models import VALID_REASONS
        self.reason = reason
        super().__init__(
            f"Invalid reason {reason!r}. Must be one of: {', '.join(VALID_REASONS)}"
        )


class InvalidOwnerKind(OwnershipError):
    """Owner kind is neither individual nor organization."""
    http_status = 400

    def __init__(self, kind: Any):
        self.kind = kind
        super().__init__(f"Invalid owner kind {kind!r}. Must be individual or organization")


class OwnerNotFound(OwnershipError):
    """The owner directory does not know the requested owner."""
    http_status = 400

    def __init__(self, owner_id: str, kind: Any):
        self.owner_id = owner_id
        self.kind = kind
        kind_name = getattr(kind, "value", kind)
        super().__init__(f"No {kind_name} with id {owner_id}")


class StoreUnavailable(OwnershipError):
    """A store transaction could not be opened, executed or committed."""
    http_status = 503
    retryable = True

    def __init__(self, message: str = "Ownership store unavailable", pet_id: Optional[str] = None):
        super().__init__(message, pet_id)


class PartialTransferFailure(OwnershipError):
    """A pet was observed with other than exactly one current record."""
    http_status = 500

    def __init__(self, pet_id: str, current_count: int):
        self.current_count = current_count
        super().__init__(
            f"Ownership integrity violated for pet {pet_id}: {current_count} current records",
            pet_id,
        )
