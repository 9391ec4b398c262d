from typing import Any, Optional

from credit_ledger.models.credit import CreditSale
from credit_ledger.models.customer_key import CustomerKey, KeyKind
from credit_ledger.utils.numbers import clean_text


def derive_key(name: Optional[str], phone: Optional[str], sale_id: Any = None) -> CustomerKey:
    """
    Resolve the grouping key for a credit sale: phone, else lowercased name,
    else the sale id so anonymous sales never merge. Never raises.
    """
    phone_text = clean_text(phone)
    if phone_text:
        return CustomerKey(kind=KeyKind.PHONE, value=phone_text)

    name_text = clean_text(name).lower()
    if name_text:
        return CustomerKey(kind=KeyKind.NAME, value=name_text)

    sale_text = clean_text(sale_id)
    return CustomerKey(kind=KeyKind.UNKNOWN, value=sale_text or "nosale")


def key_for_sale(sale: CreditSale) -> CustomerKey:
    return derive_key(sale.customer_name, sale.customer_phone, sale.sale_id)
