"""
Service layer.

The application builds one OwnershipLedger per store; callers outside a Flask
request can construct their own.
"""

from .ownership_ledger import OwnershipLedger

__all__ = ['OwnershipLedger']
