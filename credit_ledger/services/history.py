"""
PaymentHistoryReconstructor - One chronological ledger per customer group.

Core algorithm:
1. Flatten the payments of every sale, tagging each with its owning sale
2. Sort by paid_at (created_at when paid_at is missing)
3. base_open = sum of original_amount over ALL sales in the group
4. Walk the payments, accumulating what was paid, and record the group
   open balance after each one: max(0, base_open - running_paid)

base_open is an all-time figure, not a point-in-time open balance. A sale
added after earlier payments shifts those payments' running balance.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from credit_ledger.models.credit import CreditSaleDetail, sale_date_order
from credit_ledger.models.customer_key import CustomerKey
from credit_ledger.models.group import (
    UNKNOWN_CUSTOMER,
    CustomerLedgerView,
    CustomerRef,
    LedgerPayment,
    LedgerTotals,
)
from credit_ledger.services.aggregator import CreditGroupAggregator
from credit_ledger.services.status import is_open
from credit_ledger.utils.numbers import safe_number


def _by_payment_time(payment: LedgerPayment) -> datetime:
    return payment.occurred_at or datetime.min


class PaymentHistoryReconstructor:
    @staticmethod
    def reconstruct(
        sale_details: Iterable[Optional[CreditSaleDetail]],
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
        key: Optional[CustomerKey] = None,
    ) -> CustomerLedgerView:
        credits = sorted((d for d in sale_details if d is not None), key=sale_date_order)

        totals = LedgerTotals()
        for detail in credits:
            totals.credits_count += 1
            totals.original_amount += safe_number(detail.original_amount)
            totals.paid_amount += safe_number(detail.paid_amount)
            totals.profit += safe_number(detail.profit)
            if is_open(detail):
                totals.open_balance += safe_number(detail.balance)

        flattened: List[LedgerPayment] = []
        for detail in credits:
            for payment in detail.payments:
                flattened.append(
                    LedgerPayment(
                        **payment.model_dump(exclude={"sale_id"}),
                        sale_id=detail.sale_id,
                        credit_sale_date=detail.sale_date,
                    )
                )
        flattened.sort(key=_by_payment_time)

        base_open = totals.original_amount
        running_paid = 0.0
        for payment in flattened:
            running_paid += safe_number(payment.amount)
            payment.group_open_balance_after = max(0.0, base_open - running_paid)

        open_totals = CreditGroupAggregator.open_only_totals(credits)
        if customer_name is None and credits:
            customer_name = credits[0].customer_name
        if customer_phone is None and credits:
            customer_phone = credits[0].customer_phone

        return CustomerLedgerView(
            key=key,
            customer=CustomerRef(
                name=customer_name or UNKNOWN_CUSTOMER,
                phone=customer_phone or "",
            ),
            totals=totals,
            open_totals=open_totals,
            credits=credits,
            payments=flattened,
            suggested_payment=float(round(open_totals.balance)),
        )
