"""Open/closed/overdue predicates. Pure; no side effects."""
from datetime import date, datetime, time
from typing import Optional

from credit_ledger.models.credit import CreditSale, CreditStatus, GroupStatus
from credit_ledger.utils.numbers import safe_number


def start_of_today(today: Optional[date] = None) -> datetime:
    return datetime.combine(today or date.today(), time.min)


def is_open(sale: CreditSale) -> bool:
    return safe_number(sale.balance) > 0


def is_closed(sale: CreditSale) -> bool:
    return not is_open(sale)


def is_overdue(sale: CreditSale, today: Optional[date] = None) -> bool:
    """Open and due strictly before the start of today."""
    if not is_open(sale) or sale.due_date is None:
        return False
    return sale.due_date < start_of_today(today)


def matches_status(sale: CreditSale, status: CreditStatus) -> bool:
    if status == CreditStatus.OPEN:
        return is_open(sale)
    if status == CreditStatus.CLOSED:
        return is_closed(sale)
    return True


def group_status(group) -> GroupStatus:
    """CLOSED when nothing is owed, OVERDUE when any open credit is past due, else OPEN."""
    if safe_number(group.totals.open_balance) <= 0:
        return GroupStatus.CLOSED
    if group.overdue_count > 0:
        return GroupStatus.OVERDUE
    return GroupStatus.OPEN
