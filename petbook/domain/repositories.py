"""
Repository interfaces for the domain layer.

These interfaces define the contracts for data access without coupling to specific implementations.
The ledger only ever talks to an OwnershipStore; owner lookups and organization
roles belong to collaborators outside this package.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import List

from .models import OwnershipRecord, RecordCriteria, OwnerKind


class StoreTransaction(ABC):
    """Operations available inside one store transaction."""

    @abstractmethod
    def insert(self, record: OwnershipRecord) -> OwnershipRecord:
        """Insert a record, assigning a record_id if it has none."""
        pass

    @abstractmethod
    def delete_matching(self, criteria: RecordCriteria) -> int:
        """Delete records matching criteria; return how many were removed."""
        pass

    @abstractmethod
    def query_matching(self, criteria: RecordCriteria) -> List[OwnershipRecord]:
        """Return records matching criteria."""
        pass


class OwnershipStore(ABC):
    """Transactional store of ownership records."""

    @abstractmethod
    def transaction(self, read_only: bool = False) -> AbstractContextManager:
        """Open a transaction.

        The context manager yields a StoreTransaction, commits on clean exit
        and rolls back when the block raises. Raises StoreUnavailable when the
        transaction cannot be opened or committed.
        """
        pass

    def close(self) -> None:
        """Release any resources held by the store."""


class OwnerDirectory(ABC):
    """Lookup of known individuals and organizations."""

    @abstractmethod
    def exists(self, owner_id: str, kind: OwnerKind) -> bool:
        """Return True if the owner exists."""
        pass


class OrganizationManagers(ABC):
    """Organization role lookup."""

    @abstractmethod
    def can_manage(self, user_id: str, org_id: str) -> bool:
        """Return True if the user manages the organization."""
        pass
