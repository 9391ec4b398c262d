import asyncio
import copy
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from credit_ledger.main import app
from credit_ledger.core.errors import RemoteError
from credit_ledger.models.credit import CreditSale, CreditSaleDetail, CreditStatus, Payment
from credit_ledger.models.group import CreditListing

TODAY = date(2024, 3, 1)


def make_sale(sale_id, balance, sale_date="2024-01-01", original=None, paid=None, **extra) -> CreditSale:
    """Build a credit sale row; original defaults to balance, paid to original - balance."""
    original = balance if original is None else original
    if paid is None and isinstance(original, (int, float)) and isinstance(balance, (int, float)):
        paid = original - balance
    return CreditSale.model_validate({
        "sale_id": sale_id,
        "sale_date": sale_date,
        "original_amount": original,
        "paid_amount": paid,
        "balance": balance,
        **extra,
    })


class FakeLedgerStore:
    """
    In-memory Ledger Store.

    Applies payments to balances like the real store so reload-after-payment
    scenarios can be checked end to end.
    """

    def __init__(self, rows: List[dict], fail_on_write: Optional[int] = None, detail_delay: float = 0):
        self.rows: Dict[str, dict] = {str(r["sale_id"]): copy.deepcopy(r) for r in rows}
        for row in self.rows.values():
            row.setdefault("payments", [])
            row.setdefault("items", [])
        self.writes: List[dict] = []
        self.fail_on_write = fail_on_write
        self.detail_delay = detail_delay
        self.list_calls = 0
        self.detail_calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.summary: Optional[dict] = None

    async def list_credits(self, shop_id, status=CreditStatus.OPEN) -> CreditListing:
        self.list_calls += 1
        status = CreditStatus(status)
        rows = []
        for row in self.rows.values():
            open_row = float(row.get("balance") or 0) > 0
            if status == CreditStatus.OPEN and not open_row:
                continue
            if status == CreditStatus.CLOSED and open_row:
                continue
            rows.append({k: v for k, v in row.items() if k not in ("payments", "items")})
        payload = {"summary": self.summary, "credits": rows} if self.summary else rows
        return CreditListing.from_payload(copy.deepcopy(payload))

    async def get_credit_detail(self, sale_id) -> Optional[CreditSaleDetail]:
        self.detail_calls.append(str(sale_id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.detail_delay)
            row = self.rows.get(str(sale_id))
            return CreditSaleDetail.model_validate(copy.deepcopy(row)) if row else None
        finally:
            self.in_flight -= 1

    async def record_payment(self, sale_id, amount, payment_method, note=None) -> Payment:
        if self.fail_on_write is not None and len(self.writes) + 1 == self.fail_on_write:
            raise RemoteError("Ledger Store unavailable", status_code=503)
        method = getattr(payment_method, "value", payment_method)
        self.writes.append({"sale_id": str(sale_id), "amount": amount, "payment_method": method, "note": note})

        row = self.rows[str(sale_id)]
        row["paid_amount"] = float(row.get("paid_amount") or 0) + amount
        row["balance"] = float(row.get("balance") or 0) - amount
        payment = {
            "id": f"p{len(self.writes)}",
            "sale_id": str(sale_id),
            "amount": amount,
            "payment_method": method,
            "note": note,
            "paid_at": (datetime(2024, 2, 1) + timedelta(minutes=len(self.writes))).isoformat(),
        }
        row["payments"].append(payment)
        return Payment.model_validate(payment)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def jane_rows():
    """Jane owes on two sales: 10000 from Jan 1st and 5000 from Jan 10th."""
    return [
        {
            "sale_id": 1,
            "customer_name": "Jane",
            "customer_phone": "0788111222",
            "sale_date": "2024-01-01",
            "original_amount": 10000,
            "paid_amount": 0,
            "balance": 10000,
            "items": [{"item_name": "Rice 25kg", "quantity": 2, "unit_price": 5000}],
        },
        {
            "sale_id": 2,
            "customer_name": "Jane",
            "customer_phone": "0788111222",
            "sale_date": "2024-01-10",
            "original_amount": 5000,
            "paid_amount": 0,
            "balance": 5000,
        },
    ]


@pytest.fixture
def fake_store(jane_rows):
    return FakeLedgerStore(jane_rows)


@pytest.fixture
def mock_db():
    """Mock MongoDB database for journal tests"""
    db = MagicMock()

    intents = MagicMock()
    intents.insert_one = AsyncMock()
    intents.update_one = AsyncMock(return_value=MagicMock(modified_count=1))
    intents.find = MagicMock()
    db.allocation_intents = intents

    return db


@pytest.fixture
def mock_journal():
    """Journal double that hands back the intent it was given"""
    journal = MagicMock()
    journal.record_intent = AsyncMock(side_effect=lambda intent: intent)
    journal.mark_applied = AsyncMock(return_value=True)
    journal.mark_failed = AsyncMock(return_value=True)
    return journal


@pytest.fixture
def sale_factory():
    return make_sale


@pytest.fixture
def store_factory():
    return FakeLedgerStore


@pytest.fixture
def client():
    """FastAPI test client; lifespan is not run, so no real connections are made."""
    yield TestClient(app)
    app.dependency_overrides.clear()
