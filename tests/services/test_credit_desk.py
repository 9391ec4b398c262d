import asyncio

import pytest

from credit_ledger.core.errors import AllocationCancelledError, RemoteError, ValidationError
from credit_ledger.models.credit import CreditStatus
from credit_ledger.services.credit_desk import CreditDesk


async def _desk_with_jane(store, today, status=CreditStatus.ALL):
    desk = CreditDesk(store, "shop-1", status=status, today=today)
    await desk.load_credits()
    [group] = desk.groups
    await desk.select_group(group)
    return desk


@pytest.mark.asyncio
async def test_jane_pays_twelve_thousand(fake_store, today):
    desk = await _desk_with_jane(fake_store, today)
    assert desk.selected.open_totals.balance == 15000
    assert desk.selected.suggested_payment == 15000

    result = await desk.submit_payment(12000, "cash")

    assert [(line.sale_id, line.applied) for line in result.lines] == [("1", 10000), ("2", 2000)]
    assert fake_store.writes == [
        {"sale_id": "1", "amount": 10000, "payment_method": "CASH", "note": None},
        {"sale_id": "2", "amount": 2000, "payment_method": "CASH", "note": None},
    ]

    # Ledger view comes from the reload, not from the allocation result
    balances = {c.sale_id: c.balance for c in desk.selected.credits}
    assert balances == {"1": 0, "2": 3000}
    assert desk.selected.open_totals.balance == 3000
    assert desk.groups[0].totals.open_balance == 3000
    assert [p.group_open_balance_after for p in desk.selected.payments] == [5000, 3000]


@pytest.mark.asyncio
async def test_reload_with_open_filter_drops_closed_sale(fake_store, today):
    desk = await _desk_with_jane(fake_store, today, status=CreditStatus.OPEN)

    await desk.submit_payment(10000, "mobile")

    assert [c.sale_id for c in desk.selected.credits] == ["2"]
    assert desk.selected.open_totals.balance == 5000


@pytest.mark.asyncio
async def test_payment_without_selection_is_rejected(fake_store, today):
    desk = CreditDesk(fake_store, "shop-1", today=today)
    await desk.load_credits()

    with pytest.raises(ValidationError, match="Select a customer"):
        await desk.submit_payment(100, "cash")


@pytest.mark.asyncio
async def test_rejected_payment_does_not_reload(fake_store, today):
    desk = await _desk_with_jane(fake_store, today)
    list_calls = fake_store.list_calls

    with pytest.raises(ValidationError):
        await desk.submit_payment(15001, "cash")

    assert fake_store.list_calls == list_calls
    assert fake_store.writes == []


@pytest.mark.asyncio
async def test_failed_write_still_reloads_group(store_factory, jane_rows, today):
    store = store_factory(jane_rows, fail_on_write=2)
    desk = await _desk_with_jane(store, today)
    list_calls = store.list_calls

    with pytest.raises(RemoteError):
        await desk.submit_payment(12000, "card")

    assert store.list_calls == list_calls + 1
    balances = {c.sale_id: c.balance for c in desk.selected.credits}
    assert balances == {"1": 0, "2": 5000}
    assert desk.selected.open_totals.balance == 5000


@pytest.mark.asyncio
async def test_failed_reload_after_failed_write_keeps_original_error(store_factory, jane_rows, today):
    store = store_factory(jane_rows, fail_on_write=1)
    desk = await _desk_with_jane(store, today)

    async def unreachable(*args, **kwargs):
        raise RemoteError("Network error: cannot reach Ledger Store at http://ledger.")

    store.list_credits = unreachable

    with pytest.raises(RemoteError, match="Ledger Store unavailable"):
        await desk.submit_payment(100, "cash")


@pytest.mark.asyncio
async def test_selection_cleared_when_group_disappears(fake_store, today):
    desk = await _desk_with_jane(fake_store, today)
    fake_store.rows.clear()

    await desk.load_credits()

    assert desk.groups == []
    assert desk.selected is None
    assert desk.selected_key is None


@pytest.mark.asyncio
async def test_find_group_accepts_key_string(fake_store, today):
    desk = CreditDesk(fake_store, "shop-1", today=today)
    await desk.load_credits()

    assert desk.find_group("phone:0788111222") is desk.groups[0]
    assert desk.find_group("name:jane") is None
    assert desk.search("jan") == desk.groups
    assert desk.search("0799") == []


@pytest.mark.asyncio
async def test_summary_computed_when_store_sends_none(fake_store, today):
    desk = CreditDesk(fake_store, "shop-1", today=today)

    await desk.load_credits()

    assert desk.summary.credits_count == 2
    assert desk.summary.open_balance == 15000


@pytest.mark.asyncio
async def test_summary_from_store_is_used(fake_store, today):
    fake_store.summary = {"credits_count": 40, "open_balance": 99, "profit": 7}
    desk = CreditDesk(fake_store, "shop-1", today=today)

    await desk.load_credits()

    assert desk.summary.credits_count == 40
    assert desk.summary.profit == 7


class GatedStore:
    """Wraps a store so each list call waits for its own gate."""

    def __init__(self, inner):
        self.inner = inner
        self.gates = []

    async def list_credits(self, shop_id, status):
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        return await self.inner.list_credits(shop_id, status)


@pytest.mark.asyncio
async def test_stale_list_response_is_dropped(store_factory, jane_rows, today):
    inner = store_factory(jane_rows)
    store = GatedStore(inner)
    desk = CreditDesk(store, "shop-1", status=CreditStatus.OPEN, today=today)

    first = asyncio.ensure_future(desk.load_credits())
    await asyncio.sleep(0)
    second = asyncio.ensure_future(desk.load_credits(CreditStatus.ALL))
    await asyncio.sleep(0)

    # Newer request answers first, then the older one arrives late with other rows
    store.gates[1].set()
    assert len(await second) == 2
    inner.rows.clear()
    store.gates[0].set()
    assert await first == []

    assert desk.status == CreditStatus.ALL
    assert len(desk.credits) == 2
    assert len(desk.groups) == 1


@pytest.mark.asyncio
async def test_stale_group_detail_is_dropped(store_factory, today):
    rows = [
        {"sale_id": 1, "customer_name": "Jane", "balance": 10, "original_amount": 10},
        {"sale_id": 2, "customer_name": "Paul", "balance": 20, "original_amount": 20},
    ]
    store = store_factory(rows, detail_delay=0.01)
    desk = CreditDesk(store, "shop-1", today=today)
    await desk.load_credits()
    paul, jane = desk.groups

    slow = asyncio.ensure_future(desk.select_group(jane))
    await asyncio.sleep(0)
    fast = await desk.select_group(paul)

    assert await slow is None
    assert fast is not None
    assert desk.selected.customer.name == "Paul"
    assert desk.selected_key == paul.key


@pytest.mark.asyncio
async def test_detail_fetch_is_bounded_and_ordered(store_factory, today):
    rows = [
        {
            "sale_id": n,
            "customer_phone": "0788",
            "sale_date": f"2024-01-{31 - n:02d}",
            "original_amount": 10,
            "balance": 10,
        }
        for n in range(1, 11)
    ]
    store = store_factory(rows, detail_delay=0.01)
    desk = CreditDesk(store, "shop-1", concurrency=3, today=today)
    await desk.load_credits()

    details = await desk.load_group_details(desk.groups[0].credits)

    assert store.max_in_flight == 3
    assert [d.sale_id for d in details] == [str(n) for n in range(10, 0, -1)]


@pytest.mark.asyncio
async def test_detail_skipped_for_sale_without_id(store_factory, sale_factory, today):
    store = store_factory([{"sale_id": 1, "balance": 5}])
    desk = CreditDesk(store, "shop-1", today=today)

    details = await desk.load_group_details([sale_factory(None, 5), sale_factory(1, 5)])

    assert details[0] is None
    assert details[1].sale_id == "1"
    assert store.detail_calls == ["1"]


@pytest.mark.asyncio
async def test_journal_failure_after_write_still_applies_and_reloads(fake_store, today, mock_journal):
    mock_journal.mark_applied.side_effect = RuntimeError("journal write timed out")
    desk = CreditDesk(fake_store, "shop-1", journal=mock_journal, status=CreditStatus.ALL, today=today)
    await desk.load_credits()
    await desk.select_group(desk.groups[0])
    list_calls = fake_store.list_calls

    result = await desk.submit_payment(12000, "cash")

    assert len(fake_store.writes) == 2
    assert result.total_applied == 12000
    assert fake_store.list_calls == list_calls + 1
    assert {c.sale_id: c.balance for c in desk.selected.credits} == {"1": 0, "2": 3000}


@pytest.mark.asyncio
async def test_journal_intent_failure_still_reloads(fake_store, today, mock_journal):
    mock_journal.record_intent.side_effect = RuntimeError("journal unavailable")
    desk = CreditDesk(fake_store, "shop-1", journal=mock_journal, today=today)
    await desk.load_credits()
    await desk.select_group(desk.groups[0])
    list_calls = fake_store.list_calls

    with pytest.raises(RuntimeError):
        await desk.submit_payment(100, "cash")

    assert fake_store.writes == []
    assert fake_store.list_calls == list_calls + 1


@pytest.mark.asyncio
async def test_failed_reload_after_applied_payment_returns_result(fake_store, today):
    desk = await _desk_with_jane(fake_store, today)

    async def unreachable(*args, **kwargs):
        raise RemoteError("Ledger Store unavailable", status_code=503)

    original = fake_store.record_payment

    async def record_then_go_down(**kwargs):
        payment = await original(**kwargs)
        fake_store.list_credits = unreachable
        return payment

    fake_store.record_payment = record_then_go_down

    result = await desk.submit_payment(15000, "cash")

    assert result.total_applied == 15000
    assert len(fake_store.writes) == 2
    assert desk.selected is None
    assert desk.reload_error == "Ledger Store unavailable"


@pytest.mark.asyncio
async def test_cancel_payment_stops_before_next_write(fake_store, today):
    desk = await _desk_with_jane(fake_store, today)
    assert desk.cancel_payment() is False

    original = fake_store.record_payment

    async def record_then_cancel(**kwargs):
        payment = await original(**kwargs)
        assert desk.cancel_payment() is True
        return payment

    fake_store.record_payment = record_then_cancel

    with pytest.raises(AllocationCancelledError):
        await desk.submit_payment(12000, "cash")

    assert len(fake_store.writes) == 1
    assert {c.sale_id: c.balance for c in desk.selected.credits} == {"1": 0, "2": 5000}
    assert desk.cancel_payment() is False
