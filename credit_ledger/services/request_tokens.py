from typing import Dict

from credit_ledger.core.errors import StaleResponseError


class RequestTokens:
    """
    Monotonic per-channel request tokens.

    Each load takes a fresh token; when its response arrives, only the
    holder of the latest token may apply it.
    """

    def __init__(self):
        self._current: Dict[str, int] = {}

    def issue(self, channel: str) -> int:
        token = self._current.get(channel, 0) + 1
        self._current[channel] = token
        return token

    def current(self, channel: str) -> int:
        return self._current.get(channel, 0)

    def is_current(self, channel: str, token: int) -> bool:
        return self.current(channel) == token

    def ensure_current(self, channel: str, token: int) -> None:
        if not self.is_current(channel, token):
            raise StaleResponseError(channel, token, self.current(channel))
