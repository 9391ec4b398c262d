"""Engine error taxonomy. Every error is recoverable by reloading from the Ledger Store."""
from typing import Optional


class LedgerError(Exception):
    """Base class for credit ledger errors."""
    pass


class ValidationError(LedgerError):
    """Rejected input, raised before any remote call. The message is shown to the operator."""
    pass


class RemoteError(LedgerError):
    """A Ledger Store call failed (network, HTTP or non-2xx)."""

    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class StaleResponseError(LedgerError):
    """A response arrived for a request token that is no longer current."""

    def __init__(self, channel: str, token: int, current: int):
        super().__init__(f"Stale {channel} response (token {token}, current {current})")
        self.channel = channel
        self.token = token
        self.current = current


class AllocationCancelledError(LedgerError):
    """The allocation was cancelled between two per-sale writes."""
    pass
