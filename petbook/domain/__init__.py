"""
Domain layer for the ownership ledger.

Contains the core business entities, errors and repository interfaces.
"""

from .models import (
    Owner, OwnerKind, OwnershipRecord, OwnershipStatus, RecordCriteria,
    TransferReason, VALID_REASONS, now_utc,
)
from .exceptions import (
    OwnershipError, OwnershipNotFound, AlreadyOwned, SelfTransfer, OwnerChanged, InvalidReason,
    InvalidOwnerKind, OwnerNotFound, StoreUnavailable, PartialTransferFailure,
)
from .repositories import OwnershipStore, StoreTransaction, OwnerDirectory, OrganizationManagers

__all__ = [
    'Owner', 'OwnerKind', 'OwnershipRecord', 'OwnershipStatus', 'RecordCriteria',
    'TransferReason', 'VALID_REASONS', 'now_utc',
    'OwnershipError', 'OwnershipNotFound', 'AlreadyOwned', 'SelfTransfer', 'OwnerChanged', 'InvalidReason',
    'InvalidOwnerKind', 'OwnerNotFound', 'StoreUnavailable', 'PartialTransferFailure',
    'OwnershipStore', 'StoreTransaction', 'OwnerDirectory', 'OrganizationManagers',
]
