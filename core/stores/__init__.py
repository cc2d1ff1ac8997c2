"""Ledger persistence: the store contract and its implementations."""

from core.stores.base import InvoiceStore, PaymentStore, LedgerSession, LedgerStorage
from core.stores.memory import InMemoryLedgerStorage
