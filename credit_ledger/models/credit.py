"""
Credit sale models, decoded from Ledger Store rows.

Design principles:
- The Ledger Store is the system of record; rows are trusted, never recomputed
- Decoding is lenient: field-name variants are accepted via aliases
- Missing or non-numeric money decodes to 0, unparsable dates to None
- All dates are naive local datetimes so comparisons share one clock
"""

from typing import Any, List, Optional
from datetime import datetime
from enum import Enum
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from credit_ledger.utils.numbers import clean_text, parse_datetime, safe_number


class CreditStatus(str, Enum):
    """Status filter sent to the Ledger Store when listing credits."""
    OPEN = "open"
    CLOSED = "closed"
    ALL = "all"


class GroupStatus(str, Enum):
    OPEN = "OPEN"
    OVERDUE = "OVERDUE"
    CLOSED = "CLOSED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    MOMO = "MOMO"
    POS = "POS"


def _optional_text(value: Any) -> Optional[str]:
    text = clean_text(value)
    return text or None


class CreditSale(BaseModel):
    """
    One POS sale that was not fully paid at time of sale.

    Invariants (maintained upstream):
    - balance = original_amount - paid_amount
    - closed once balance reaches 0
    """
    model_config = ConfigDict(populate_by_name=True)

    sale_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("sale_id", "saleId", "id")
    )

    # Customer (both optional and unreliable)
    customer_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("customer_name", "customerName")
    )
    customer_phone: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("customer_phone", "customerPhone")
    )

    # Temporal
    sale_date: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("sale_date", "saleDate")
    )
    due_date: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("due_date", "dueDate")
    )

    # Monetary
    original_amount: float = Field(
        default=0.0,
        validation_alias=AliasChoices(
            "original_amount", "originalAmount", "total_sale_amount", "totalSaleAmount"
        ),
    )
    paid_amount: float = Field(
        default=0.0, validation_alias=AliasChoices("paid_amount", "paidAmount")
    )
    balance: float = Field(
        default=0.0,
        validation_alias=AliasChoices("balance", "credit_balance", "creditBalance"),
    )
    profit: float = Field(
        default=0.0, validation_alias=AliasChoices("profit", "total_profit", "totalProfit")
    )

    @field_validator("sale_id", "customer_name", "customer_phone", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return _optional_text(value)

    @field_validator("sale_date", "due_date", mode="before")
    @classmethod
    def _date(cls, value: Any) -> Optional[datetime]:
        return parse_datetime(value)

    @field_validator("original_amount", "paid_amount", "balance", "profit", mode="before")
    @classmethod
    def _number(cls, value: Any) -> float:
        return safe_number(value)


def sale_date_order(sale: CreditSale) -> datetime:
    """Sort key: oldest sale first, undated sales before all dated ones."""
    return sale.sale_date or datetime.min


class SaleLine(BaseModel):
    """One item line of a credit sale, for display only."""
    model_config = ConfigDict(populate_by_name=True)

    item_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("item_id", "itemId", "id")
    )
    item_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("item_name", "itemName", "name")
    )
    quantity_pieces: float = Field(
        default=0.0,
        validation_alias=AliasChoices("quantity_pieces", "quantityPieces", "quantity"),
    )
    unit_sale_price: float = Field(
        default=0.0,
        validation_alias=AliasChoices(
            "unit_sale_price", "unitSalePrice",
            "sale_price_per_piece", "salePricePerPiece",
            "unit_price", "unitPrice",
        ),
    )
    line_total: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices(
            "line_total", "lineTotal", "line_sale_amount", "lineSaleAmount", "total"
        ),
    )

    @field_validator("item_id", "item_name", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return _optional_text(value)

    @field_validator("quantity_pieces", "unit_sale_price", mode="before")
    @classmethod
    def _number(cls, value: Any) -> float:
        return safe_number(value)

    @field_validator("line_total", mode="before")
    @classmethod
    def _line_total(cls, value: Any) -> Optional[float]:
        return None if value is None else safe_number(value)

    @model_validator(mode="after")
    def _fill_defaults(self) -> "SaleLine":
        if self.line_total is None:
            self.line_total = self.quantity_pieces * self.unit_sale_price
        if not self.item_name:
            self.item_name = f"Item #{self.item_id}"
        return self


def normalize_payment_method(value: Any) -> str:
    """Upper-case a stored payment method; unknown methods pass through."""
    method = clean_text(getattr(value, "value", value)).upper()
    return method or "METHOD"


class Payment(BaseModel):
    """One payment event against exactly one credit sale. Immutable once recorded."""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("id", "payment_id", "paymentId")
    )
    sale_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("sale_id", "saleId")
    )
    amount: float = Field(
        default=0.0, validation_alias=AliasChoices("amount", "paid_amount", "paidAmount")
    )
    payment_method: str = Field(
        default="METHOD",
        validation_alias=AliasChoices("payment_method", "method", "paymentMethod"),
    )
    paid_at: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("paid_at", "paidAt")
    )
    created_at: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("created_at", "createdAt")
    )
    note: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("note", "notes")
    )

    @field_validator("id", "sale_id", "note", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return _optional_text(value)

    @field_validator("amount", mode="before")
    @classmethod
    def _number(cls, value: Any) -> float:
        return safe_number(value)

    @field_validator("payment_method", mode="before")
    @classmethod
    def _method(cls, value: Any) -> str:
        return normalize_payment_method(value)

    @field_validator("paid_at", "created_at", mode="before")
    @classmethod
    def _date(cls, value: Any) -> Optional[datetime]:
        return parse_datetime(value)

    @property
    def occurred_at(self) -> Optional[datetime]:
        return self.paid_at or self.created_at


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


class CreditSaleDetail(CreditSale):
    """A credit sale with its item lines and payment history."""

    items: List[SaleLine] = Field(
        default_factory=list,
        validation_alias=AliasChoices("items", "lines", "sale_lines", "saleItems"),
    )
    payments: List[Payment] = Field(
        default_factory=list,
        validation_alias=AliasChoices("payments", "payment_history", "paymentHistory"),
    )

    @field_validator("items", mode="before")
    @classmethod
    def _items(cls, value: Any) -> list:
        lines = []
        for idx, line in enumerate(_as_list(value)):
            if isinstance(line, dict) and not any(
                line.get(k) is not None for k in ("item_id", "itemId", "id")
            ):
                # Positional id keeps unnamed lines distinguishable
                line = {**line, "item_id": idx}
            lines.append(line)
        return lines

    @field_validator("payments", mode="before")
    @classmethod
    def _payments(cls, value: Any) -> list:
        return _as_list(value)
