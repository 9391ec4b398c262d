"""Payment input validation. Everything here runs before any Ledger Store call."""
from typing import Any, Optional

from credit_ledger.core.errors import ValidationError
from credit_ledger.models.credit import PaymentMethod
from credit_ledger.utils.numbers import clean_text, money, safe_number

# Float sums of 2-dp balances can land just under the exact figure
BALANCE_TOLERANCE = 1e-6

# Labels used by the shop UI's payment method picker
METHOD_ALIASES = {
    "cash": PaymentMethod.CASH,
    "card": PaymentMethod.POS,
    "pos": PaymentMethod.POS,
    "mobile": PaymentMethod.MOMO,
    "momo": PaymentMethod.MOMO,
}


def resolve_payment_method(method: Any) -> PaymentMethod:
    if isinstance(method, PaymentMethod):
        return method
    text = clean_text(method).lower()
    resolved = METHOD_ALIASES.get(text)
    if resolved is None:
        raise ValidationError("Select a payment method (cash, card or mobile money).")
    return resolved


def validate_payment_amount(amount: Any, open_balance: float) -> float:
    """
    Validate a group payment amount.

    Rules:
    - amount must be a positive number
    - amount must not exceed the group's open-only balance, compared unrounded
      so a sub-cent balance cannot be overpaid
    """
    value = money(amount)
    if value <= 0:
        raise ValidationError("Enter a valid payment amount.")
    if value > safe_number(open_balance) + BALANCE_TOLERANCE:
        raise ValidationError("Payment cannot be greater than the customer OPEN balance.")
    return value


def clean_note(note: Optional[str]) -> Optional[str]:
    text = clean_text(note)
    return text or None
