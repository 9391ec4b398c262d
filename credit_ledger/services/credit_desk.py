"""
CreditDesk - One operator's credit workspace for a shop.

Flow:
1. load_credits: list credit sales by status, group them by customer
2. select_group: fetch every sale's detail (bounded concurrency), rebuild the ledger
3. submit_payment: allocate FIFO, then ALWAYS reload from the Ledger Store

Loads are tagged with request tokens; a response that arrives after a newer
request on the same channel is dropped instead of overwriting fresher state.
Balances shown are only ever the ones the Ledger Store returned.
"""

import asyncio
import logging
from datetime import date
from typing import List, Optional, Union

from credit_ledger.core.config import settings
from credit_ledger.core.errors import RemoteError, StaleResponseError, ValidationError
from credit_ledger.models.allocation import AllocationResult
from credit_ledger.models.credit import (
    CreditSale,
    CreditSaleDetail,
    CreditStatus,
    PaymentMethod,
    sale_date_order,
)
from credit_ledger.models.customer_key import CustomerKey
from credit_ledger.models.group import CreditListSummary, CustomerGroup, CustomerLedgerView
from credit_ledger.services.aggregator import CreditGroupAggregator
from credit_ledger.services.allocator import PaymentAllocator
from credit_ledger.services.history import PaymentHistoryReconstructor
from credit_ledger.services.key_resolver import key_for_sale
from credit_ledger.services.request_tokens import RequestTokens
from credit_ledger.utils.pool import bounded_gather

logger = logging.getLogger(__name__)

LIST_CHANNEL = "list"
DETAIL_CHANNEL = "detail"


class CreditDesk:
    def __init__(
        self,
        store,
        shop_id: Union[int, str],
        journal=None,
        status: CreditStatus = CreditStatus.OPEN,
        concurrency: Optional[int] = None,
        today: Optional[date] = None,
    ):
        self.store = store
        self.shop_id = shop_id
        self.status = CreditStatus(status)
        self.concurrency = concurrency or settings.DETAIL_FETCH_CONCURRENCY
        self.today = today
        self.allocator = PaymentAllocator(store, journal=journal)
        self.tokens = RequestTokens()

        self.credits: List[CreditSale] = []
        self.summary = CreditListSummary()
        self.groups: List[CustomerGroup] = []
        self.selected_key: Optional[CustomerKey] = None
        self.selected: Optional[CustomerLedgerView] = None
        self.reload_error: Optional[str] = None
        self._cancel_event: Optional[asyncio.Event] = None

    # ----- Loading -----

    async def load_credits(self, status: Optional[CreditStatus] = None) -> List[CreditSale]:
        """
        Reload the credit list. Returns the rows applied, or [] when this
        response was superseded by a newer load.
        """
        if status is not None:
            self.status = CreditStatus(status)
        token = self.tokens.issue(LIST_CHANNEL)

        listing = await self.store.list_credits(self.shop_id, self.status)
        try:
            self.tokens.ensure_current(LIST_CHANNEL, token)
        except StaleResponseError as exc:
            logger.debug("Dropping stale credit list", extra={"token": exc.token, "current": exc.current})
            return []

        self.credits = listing.credits
        self.summary = listing.summary or CreditGroupAggregator.summarize_credits(
            listing.credits, previous=self.summary
        )
        self.groups = CreditGroupAggregator.aggregate(listing.credits, today=self.today)

        if self.selected_key is not None and self.find_group(self.selected_key) is None:
            self.clear_selection()
        return listing.credits

    def search(self, query: Optional[str]) -> List[CustomerGroup]:
        return CreditGroupAggregator.search_groups(self.groups, query)

    def find_group(self, key: Union[CustomerKey, str]) -> Optional[CustomerGroup]:
        if isinstance(key, str):
            key = CustomerKey.parse(key)
        for group in self.groups:
            if group.key == key:
                return group
        return None

    def clear_selection(self) -> None:
        self.selected_key = None
        self.selected = None

    async def load_group_details(self, credits: List[CreditSale]) -> List[Optional[CreditSaleDetail]]:
        """Fetch every sale's detail, at most `concurrency` requests in flight, in sale-date order."""
        ordered = sorted(credits, key=sale_date_order)

        async def fetch(sale: CreditSale, index: int) -> Optional[CreditSaleDetail]:
            if not sale.sale_id:
                return None
            return await self.store.get_credit_detail(sale.sale_id)

        return await bounded_gather(ordered, fetch, limit=self.concurrency)

    async def select_group(self, group: CustomerGroup) -> Optional[CustomerLedgerView]:
        """Load the full ledger of a group. Returns None when superseded by a newer selection."""
        if group is None:
            raise ValidationError("Select a customer first.")
        token = self.tokens.issue(DETAIL_CHANNEL)
        self.selected_key = group.key

        details = await self.load_group_details(group.credits)
        try:
            self.tokens.ensure_current(DETAIL_CHANNEL, token)
        except StaleResponseError as exc:
            logger.debug(
                "Dropping stale group detail",
                extra={"group_key": str(group.key), "token": exc.token, "current": exc.current},
            )
            return None

        view = PaymentHistoryReconstructor.reconstruct(
            details,
            customer_name=group.customer_name,
            customer_phone=group.customer_phone,
            key=group.key,
        )
        self.selected = view
        return view

    async def reload_selected_group(self) -> Optional[CustomerLedgerView]:
        """Re-fetch the list and the selected group's details from the Ledger Store."""
        if self.selected_key is None:
            return None
        key = self.selected_key
        previous = self.selected.customer if self.selected else None

        fresh = await self.load_credits(self.status)
        credits = [c for c in fresh if key_for_sale(c) == key]
        if not credits:
            self.clear_selection()
            return None

        group = self.find_group(key) or CustomerGroup(key=key, credits=credits)
        if previous is not None:
            group = group.model_copy(
                update={"customer_name": previous.name, "customer_phone": previous.phone}
            )
        return await self.select_group(group)

    # ----- Payments -----

    async def submit_payment(
        self,
        amount: float,
        method: Union[PaymentMethod, str],
        note: Optional[str] = None,
    ) -> AllocationResult:
        """
        Apply a payment to the selected group, oldest sale first.

        Whatever happens after validation, the group is reloaded so partial
        allocations show up as the Ledger Store recorded them. A reload that
        fails after a successful allocation does not fail the payment: the
        result is returned, `selected` is cleared and `reload_error` is set.
        """
        if self.selected is None or not self.selected.credits:
            raise ValidationError("Select a customer first.")

        self.reload_error = None
        self._cancel_event = asyncio.Event()
        try:
            result = await self.allocator.allocate(
                self.selected, amount, method, note, cancel_event=self._cancel_event
            )
        except ValidationError:
            # Rejected before any write; nothing to refresh
            raise
        except Exception:
            await self._reload_quietly("Reload after failed allocation also failed")
            raise
        finally:
            self._cancel_event = None

        await self._reload_quietly("Reload after applied allocation failed")
        return result

    def cancel_payment(self) -> bool:
        """
        Stop the running payment before its next per-sale write.
        Returns False when no payment is in flight.
        """
        if self._cancel_event is None:
            return False
        self._cancel_event.set()
        return True

    async def _reload_quietly(self, message: str) -> None:
        try:
            await self.reload_selected_group()
        except RemoteError as exc:
            logger.warning(
                message,
                extra={"group_key": str(self.selected_key), "detail": exc.detail},
            )
            # Balances on screen predate the payment; do not keep showing them
            self.selected = None
            self.reload_error = exc.detail
