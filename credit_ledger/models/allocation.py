"""
Allocation models.

An allocation applies one lump payment to the open credits of a customer
group, one Ledger Store write per sale. The writes are independent: there
is no cross-sale transaction, so every write is journalled as an intent
before it is issued.
"""

from datetime import datetime
from enum import Enum
from typing import List, NamedTuple, Optional
from uuid import uuid4
from pydantic import BaseModel

from credit_ledger.models.base import MongoModel
from credit_ledger.models.credit import CreditSale, Payment, PaymentMethod


class AllocationStep(NamedTuple):
    sale: CreditSale
    amount: float


class AllocationLine(BaseModel):
    sale_id: str
    sale_date: Optional[datetime] = None
    balance_before: float
    applied: float
    balance_after: float
    payment: Optional[Payment] = None


class AllocationResult(BaseModel):
    """
    What this client applied. Advisory only: reload the group from the
    Ledger Store to see the authoritative balances.
    """
    allocation_id: str
    group_key: str
    requested_amount: float
    payment_method: PaymentMethod
    note: Optional[str] = None
    lines: List[AllocationLine] = []
    total_applied: float = 0.0
    unapplied: float = 0.0


class IntentStatus(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    FAILED = "failed"


def new_allocation_id() -> str:
    return uuid4().hex


class AllocationIntent(MongoModel):
    """
    Journal row for one planned per-sale payment write.

    Lifecycle: pending -> applied | failed
    - written before the Ledger Store call
    - a row left pending means the process stopped mid-allocation
    """
    allocation_id: str
    group_key: str
    sale_id: str
    amount: float
    payment_method: PaymentMethod
    note: Optional[str] = None

    status: IntentStatus = IntentStatus.PENDING
    payment_id: Optional[str] = None
    error: Optional[str] = None
