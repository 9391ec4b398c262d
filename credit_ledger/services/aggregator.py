"""
CreditGroupAggregator - Folds flat credit-sale rows into customer groups.

Core algorithm:
1. Resolve each sale's customer key
2. Upsert the group and accumulate totals and open/closed counts
3. Track oldest/newest sale date and the next due date of open credits
4. Count open credits due before the start of today as overdue
5. Sort groups by open balance, biggest debt first
"""

from datetime import date
from typing import Dict, Iterable, List, Optional

from credit_ledger.models.credit import CreditSale
from credit_ledger.models.customer_key import CustomerKey
from credit_ledger.models.group import (
    UNKNOWN_CUSTOMER,
    CreditListSummary,
    CustomerGroup,
    OpenTotals,
)
from credit_ledger.services.key_resolver import key_for_sale
from credit_ledger.services.status import is_open, start_of_today
from credit_ledger.utils.numbers import money, safe_number


class CreditGroupAggregator:
    @staticmethod
    def aggregate(sales: Iterable[CreditSale], today: Optional[date] = None) -> List[CustomerGroup]:
        """
        Group credit sales by customer.

        Pure: the same sales and the same `today` always give equal groups.
        Missing numbers count as 0 and missing dates are skipped, so a bad
        row can never make the whole list fail.
        """
        today0 = start_of_today(today)
        groups: Dict[CustomerKey, CustomerGroup] = {}

        for sale in sales:
            key = key_for_sale(sale)
            group = groups.get(key)
            if group is None:
                group = CustomerGroup(
                    key=key,
                    customer_name=sale.customer_name or UNKNOWN_CUSTOMER,
                    customer_phone=sale.customer_phone or "",
                )
                groups[key] = group

            group.credits.append(sale)

            totals = group.totals
            totals.credits_count += 1
            totals.original_amount += safe_number(sale.original_amount)
            totals.paid_amount += safe_number(sale.paid_amount)

            sale_open = is_open(sale)
            if sale_open:
                totals.open_balance += safe_number(sale.balance)
                group.open_count += 1
            else:
                group.closed_count += 1

            if sale.sale_date is not None:
                if group.oldest_date is None or sale.sale_date < group.oldest_date:
                    group.oldest_date = sale.sale_date
                if group.newest_date is None or sale.sale_date > group.newest_date:
                    group.newest_date = sale.sale_date

            if sale_open and sale.due_date is not None:
                if group.next_due_date is None or sale.due_date < group.next_due_date:
                    group.next_due_date = sale.due_date
                if sale.due_date < today0:
                    group.overdue_count += 1

        result = list(groups.values())
        result.sort(key=lambda g: g.totals.open_balance, reverse=True)
        return result

    @staticmethod
    def summarize_credits(
        sales: Iterable[CreditSale],
        previous: Optional[CreditListSummary] = None,
    ) -> CreditListSummary:
        """
        Shop-wide totals when the Ledger Store did not send a summary.
        Rows carry no reliable profit, so the previous figure is kept.
        """
        summary = CreditListSummary(profit=previous.profit if previous else 0.0)
        for sale in sales:
            summary.credits_count += 1
            summary.original_amount += safe_number(sale.original_amount)
            summary.paid_amount += safe_number(sale.paid_amount)
            if is_open(sale):
                summary.open_balance += safe_number(sale.balance)
        return summary

    @staticmethod
    def open_only_balance(credits: Iterable[CreditSale]) -> float:
        """Sum of balances of open credits only; the upper bound for a payment."""
        return money(sum(safe_number(c.balance) for c in credits if is_open(c)))

    @staticmethod
    def open_only_totals(credits: Iterable[CreditSale]) -> OpenTotals:
        totals = OpenTotals()
        for credit in credits:
            if not is_open(credit):
                continue
            totals.open_sales += 1
            totals.original_amount += safe_number(credit.original_amount)
            totals.paid_amount += safe_number(credit.paid_amount)
            totals.balance += safe_number(credit.balance)
        return totals

    @staticmethod
    def search_groups(groups: List[CustomerGroup], query: Optional[str]) -> List[CustomerGroup]:
        """Case-insensitive substring match on customer name or phone."""
        q = (query or "").strip().lower()
        if not q:
            return groups
        return [
            g for g in groups
            if q in (g.customer_name or "").lower() or q in (g.customer_phone or "").lower()
        ]
