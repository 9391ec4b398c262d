"""
Customer-level views derived from credit sales. Rebuilt on every load, never persisted.

Invariants:
- open_count + closed_count == credits_count
- totals.open_balance == sum of balance over credits where balance > 0
"""

from typing import Any, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field, computed_field, field_serializer

from credit_ledger.models.credit import CreditSale, CreditSaleDetail, GroupStatus, Payment
from credit_ledger.models.customer_key import CustomerKey
from credit_ledger.services.status import group_status
from credit_ledger.utils.numbers import safe_number

UNKNOWN_CUSTOMER = "Unknown customer"


class GroupTotals(BaseModel):
    credits_count: int = 0
    original_amount: float = 0.0
    paid_amount: float = 0.0
    open_balance: float = 0.0


class LedgerTotals(GroupTotals):
    profit: float = 0.0


class CreditListSummary(LedgerTotals):
    """Shop-wide totals for one list load."""
    pass


class OpenTotals(BaseModel):
    """Totals over open credits only; the bound for a payment."""
    open_sales: int = 0
    original_amount: float = 0.0
    paid_amount: float = 0.0
    balance: float = 0.0


class CustomerGroup(BaseModel):
    key: CustomerKey
    customer_name: str = UNKNOWN_CUSTOMER
    customer_phone: str = ""

    credits: List[CreditSale] = []
    totals: GroupTotals = Field(default_factory=GroupTotals)

    oldest_date: Optional[datetime] = None
    newest_date: Optional[datetime] = None
    next_due_date: Optional[datetime] = None

    overdue_count: int = 0
    open_count: int = 0
    closed_count: int = 0

    @field_serializer("key")
    def _serialize_key(self, key: CustomerKey) -> str:
        return str(key)

    @computed_field
    @property
    def status(self) -> GroupStatus:
        return group_status(self)


class CustomerRef(BaseModel):
    name: str = UNKNOWN_CUSTOMER
    phone: str = ""


class LedgerPayment(Payment):
    """A payment placed on the customer's timeline."""
    credit_sale_date: Optional[datetime] = None
    group_open_balance_after: float = 0.0


class CustomerLedgerView(BaseModel):
    """Full history of one customer group, built from per-sale detail rows."""
    key: Optional[CustomerKey] = None
    customer: CustomerRef = Field(default_factory=CustomerRef)
    totals: LedgerTotals = Field(default_factory=LedgerTotals)
    open_totals: OpenTotals = Field(default_factory=OpenTotals)
    credits: List[CreditSaleDetail] = []
    payments: List[LedgerPayment] = []
    suggested_payment: float = 0.0

    @field_serializer("key")
    def _serialize_key(self, key: Optional[CustomerKey]) -> Optional[str]:
        return str(key) if key is not None else None


class CreditListing(BaseModel):
    """One list_credits response. `summary` is None when the Ledger Store sent none."""
    summary: Optional[CreditListSummary] = None
    credits: List[CreditSale] = []

    @classmethod
    def from_payload(cls, data: Any) -> "CreditListing":
        """Accept either a bare array of rows or {summary, credits}."""
        summary = None
        if isinstance(data, list):
            rows = data
        elif isinstance(data, dict):
            rows = data.get("credits") or []
            raw_summary = data.get("summary")
            if isinstance(raw_summary, dict) and raw_summary:
                summary = CreditListSummary(
                    credits_count=int(safe_number(raw_summary.get("credits_count"))),
                    original_amount=safe_number(raw_summary.get("original_amount")),
                    paid_amount=safe_number(raw_summary.get("paid_amount")),
                    profit=safe_number(raw_summary.get("profit")),
                    open_balance=safe_number(raw_summary.get("open_balance")),
                )
        else:
            rows = []

        if not isinstance(rows, list):
            rows = []
        credits = [CreditSale.model_validate(row) for row in rows if isinstance(row, dict)]
        return cls(summary=summary, credits=credits)
