"""
LedgerStoreClient - HTTP client for the external Ledger Store.

The Ledger Store owns credit sales and payments; this engine only reads
rows and posts payments. Every failure surfaces as RemoteError.
"""

import json
import logging
from typing import Any, Optional, Union

import httpx

from credit_ledger.core.config import settings
from credit_ledger.core.errors import RemoteError
from credit_ledger.models.credit import CreditSaleDetail, CreditStatus, Payment, PaymentMethod
from credit_ledger.models.group import CreditListing

logger = logging.getLogger(__name__)


def normalize_base_url(url: Optional[str]) -> str:
    text = str(url or "").strip()
    return text[:-1] if text.endswith("/") else text


def clean_token(token: Optional[str]) -> Optional[str]:
    """Strip a 'Bearer ' prefix and placeholder values left by the UI."""
    text = str(token or "").strip()
    if not text or text in ("null", "undefined"):
        return None
    if text.lower().startswith("bearer "):
        text = text[7:].strip()
    return text or None


class LedgerStoreClient:
    """Async client for the Ledger Store credit endpoints."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = normalize_base_url(base_url)
        headers = {"Accept": "application/json"}
        bearer = clean_token(token)
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def list_credits(
        self, shop_id: Union[int, str], status: Union[CreditStatus, str] = CreditStatus.OPEN
    ) -> CreditListing:
        """
        List credit sales for a shop, filtered by status.

        Older Ledger Store deployments only expose /credits/open|closed|all,
        so a failed /credits/list call is retried there once.
        """
        status = CreditStatus(status)
        try:
            data = await self._request(
                "GET", "/credits/list", params={"shop_id": shop_id, "status": status.value}
            )
        except RemoteError as exc:
            logger.warning(
                "credits/list failed, trying legacy endpoint",
                extra={"shop_id": shop_id, "status": status.value, "detail": exc.detail},
            )
            data = await self._request(
                "GET", f"/credits/{status.value}", params={"shop_id": shop_id}
            )
        return CreditListing.from_payload(data)

    async def get_credit_detail(self, sale_id: Union[int, str]) -> Optional[CreditSaleDetail]:
        """Fetch one credit sale with its items and payments."""
        data = await self._request("GET", f"/credits/{sale_id}")
        if not isinstance(data, dict):
            return None
        detail = CreditSaleDetail.model_validate(data)
        if detail.sale_id is None:
            detail.sale_id = str(sale_id)
        return detail

    async def record_payment(
        self,
        sale_id: Union[int, str],
        amount: float,
        payment_method: Union[PaymentMethod, str],
        note: Optional[str] = None,
    ) -> Payment:
        """Record one payment against one credit sale."""
        method = getattr(payment_method, "value", payment_method)
        body = {
            "sale_id": sale_id,
            "amount": amount,
            "payment_method": method,
            "note": note or None,
        }
        data = await self._request("POST", "/credits/payments", json=body)
        if isinstance(data, dict):
            payment = Payment.model_validate(data)
            if payment.sale_id is None:
                payment.sale_id = str(sale_id)
            return payment
        return Payment(sale_id=str(sale_id), amount=amount, payment_method=method, note=note)

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as exc:
            raise RemoteError(
                f"Network error: cannot reach Ledger Store at {self.base_url}."
            ) from exc

        if not response.is_success:
            raise RemoteError(self._error_detail(response), status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteError(
                "Ledger Store returned an invalid JSON body.", status_code=response.status_code
            ) from exc

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        detail = f"Request failed. Status: {response.status_code}"
        try:
            data = response.json()
        except ValueError:
            return detail
        if isinstance(data, dict) and data.get("detail"):
            raw = data["detail"]
            if isinstance(raw, str):
                return raw
            return json.dumps(raw)
        return detail


class LedgerStoreConnection:
    """Process-wide Ledger Store client."""

    client: LedgerStoreClient = None

ledger_store = LedgerStoreConnection()

async def connect_ledger_store():
    ledger_store.client = LedgerStoreClient(
        settings.LEDGER_API_BASE,
        token=settings.LEDGER_API_TOKEN,
        timeout=settings.LEDGER_TIMEOUT_SECONDS,
    )
    logger.info("Ledger Store client ready: %s", ledger_store.client.base_url)

async def close_ledger_store():
    if ledger_store.client is not None:
        await ledger_store.client.aclose()
        ledger_store.client = None

def get_ledger_store() -> LedgerStoreClient:
    """Get the Ledger Store client."""
    return ledger_store.client
