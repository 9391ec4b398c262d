"""
PaymentAllocator - FIFO settlement of one lump payment across open credits.

Core algorithm:
1. Validate the amount against the group's open-only balance (no remote calls yet)
2. Plan: oldest sale first, pay min(balance, remaining) to each open sale
3. Drive: one Ledger Store write per planned step, strictly in order

The writes are NOT one transaction. If write k fails, writes 1..k-1 stay
applied and the RemoteError propagates. Callers must reload the group after
every attempt, successful or not.
"""

import asyncio
import logging
from typing import Iterable, Iterator, Optional, Union

from credit_ledger.core.errors import AllocationCancelledError, RemoteError, ValidationError
from credit_ledger.models.allocation import (
    AllocationIntent,
    AllocationLine,
    AllocationResult,
    AllocationStep,
    new_allocation_id,
)
from credit_ledger.models.credit import CreditSale, Payment, PaymentMethod, sale_date_order
from credit_ledger.models.group import CustomerGroup, CustomerLedgerView
from credit_ledger.services.aggregator import CreditGroupAggregator
from credit_ledger.utils.numbers import money, safe_number
from credit_ledger.utils.payment_validation import (
    clean_note,
    resolve_payment_method,
    validate_payment_amount,
)

logger = logging.getLogger(__name__)


def plan_allocation(credits: Iterable[CreditSale], amount: float) -> Iterator[AllocationStep]:
    """Yield (sale, amount) pairs, oldest sale first, never exceeding a sale's balance."""
    remaining = money(amount)
    for sale in sorted(credits, key=sale_date_order):
        if remaining <= 0:
            return
        balance = safe_number(sale.balance)
        if not sale.sale_id or balance <= 0:
            continue
        # Rounding to cents must never push a payment past the balance
        pay_now = min(money(min(balance, remaining)), balance)
        if pay_now <= 0:
            continue
        yield AllocationStep(sale, pay_now)
        remaining = money(remaining - pay_now)


class PaymentAllocator:
    """
    Applies group payments through a Ledger Store client.

    `store` needs an async `record_payment(sale_id, amount, payment_method, note)`.
    `journal`, when given, records an intent before each write and its outcome after.
    """

    def __init__(self, store, journal=None):
        self.store = store
        self.journal = journal

    async def allocate(
        self,
        group: Union[CustomerGroup, CustomerLedgerView, None],
        amount: float,
        method: Union[PaymentMethod, str],
        note: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AllocationResult:
        if group is None or not group.credits:
            raise ValidationError("Select a customer first.")

        credits = list(group.credits)
        open_balance = CreditGroupAggregator.open_only_totals(credits).balance
        value = validate_payment_amount(amount, open_balance)
        payment_method = resolve_payment_method(method)
        note = clean_note(note)

        result = AllocationResult(
            allocation_id=new_allocation_id(),
            group_key=str(group.key) if group.key is not None else "",
            requested_amount=value,
            payment_method=payment_method,
            note=note,
        )
        logger.info(
            "Allocating group payment",
            extra={
                "allocation_id": result.allocation_id,
                "group_key": result.group_key,
                "amount": value,
                "open_balance": open_balance,
                "payment_method": payment_method.value,
            },
        )

        for step in plan_allocation(credits, value):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(
                    "Allocation cancelled before next write",
                    extra={
                        "allocation_id": result.allocation_id,
                        "applied": result.total_applied,
                    },
                )
                raise AllocationCancelledError(
                    f"Allocation cancelled after applying {result.total_applied:g}."
                )

            payment = await self._apply_step(result, step)
            balance_before = safe_number(step.sale.balance)
            result.lines.append(
                AllocationLine(
                    sale_id=step.sale.sale_id,
                    sale_date=step.sale.sale_date,
                    balance_before=balance_before,
                    applied=step.amount,
                    balance_after=money(balance_before - step.amount),
                    payment=payment,
                )
            )
            result.total_applied = money(result.total_applied + step.amount)

        result.unapplied = money(value - result.total_applied)
        logger.info(
            "Group payment applied",
            extra={
                "allocation_id": result.allocation_id,
                "sales": len(result.lines),
                "total_applied": result.total_applied,
            },
        )
        return result

    async def _apply_step(self, result: AllocationResult, step: AllocationStep) -> Optional[Payment]:
        intent = None
        if self.journal is not None:
            intent = await self.journal.record_intent(
                AllocationIntent(
                    allocation_id=result.allocation_id,
                    group_key=result.group_key,
                    sale_id=step.sale.sale_id,
                    amount=step.amount,
                    payment_method=result.payment_method,
                    note=result.note,
                )
            )

        try:
            payment = await self.store.record_payment(
                sale_id=step.sale.sale_id,
                amount=step.amount,
                payment_method=result.payment_method,
                note=result.note,
            )
        except RemoteError as exc:
            logger.error(
                "Payment write failed mid-allocation",
                extra={
                    "allocation_id": result.allocation_id,
                    "sale_id": step.sale.sale_id,
                    "amount": step.amount,
                    "already_applied": result.total_applied,
                    "status_code": exc.status_code,
                },
            )
            if intent is not None:
                await self._record_outcome(intent, self.journal.mark_failed, exc.detail)
            raise

        if intent is not None:
            await self._record_outcome(
                intent, self.journal.mark_applied, payment.id if payment else None
            )
        logger.debug(
            "Payment written",
            extra={"sale_id": step.sale.sale_id, "amount": step.amount},
        )
        return payment

    async def _record_outcome(self, intent: AllocationIntent, update, value: Optional[str]) -> None:
        """
        Await a journal status update. The Ledger Store call has already returned,
        so a journal failure is logged and the allocation carries on; the
        intent stays pending for reconciliation.
        """
        try:
            await update(str(intent.id), value)
        except Exception:
            logger.exception(
                "Could not record allocation intent outcome",
                extra={
                    "allocation_id": intent.allocation_id,
                    "intent_id": str(intent.id),
                    "sale_id": intent.sale_id,
                },
            )
