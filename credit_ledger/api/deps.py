from typing import Optional

from fastapi import Depends

from credit_ledger.core.config import settings
from credit_ledger.db.mongo import get_db
from credit_ledger.repositories.allocation_journal import AllocationJournalRepository
from credit_ledger.repositories.ledger_store import LedgerStoreClient, get_ledger_store


def get_journal(db = Depends(get_db)) -> Optional[AllocationJournalRepository]:
    """Allocation journal, or None when disabled or not connected."""
    if not settings.JOURNAL_ENABLED or db is None:
        return None
    return AllocationJournalRepository(db)


def get_store() -> LedgerStoreClient:
    return get_ledger_store()
