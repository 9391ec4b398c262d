from typing import List, Optional
from pydantic import BaseModel, Field

from credit_ledger.models.allocation import AllocationResult
from credit_ledger.models.group import CreditListSummary, CustomerGroup, CustomerLedgerView


class PaymentCreate(BaseModel):
    """Request body for a group payment."""
    amount: float
    payment_method: str = Field(description="cash | card | mobile, or CASH | POS | MOMO")
    note: Optional[str] = None


class CreditGroupsResponse(BaseModel):
    summary: CreditListSummary
    groups: List[CustomerGroup]


class GroupPaymentResponse(BaseModel):
    """Allocation outcome plus the group as reloaded from the Ledger Store."""
    allocation: AllocationResult
    ledger: Optional[CustomerLedgerView] = None
    warning: Optional[str] = None
