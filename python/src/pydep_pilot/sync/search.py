"""
Search Session

A keystroke-driven search conversation. Each query supersedes the previous
one: the earlier query's token is cancelled, so its request is aborted and
it resolves to None instead of an error.
"""

import asyncio

from ..cancellation import CancellationToken, run_cancellable
from ..config import pilot_logger
from ..errors import OperationCancelled
from ..packages.models import SearchResult
from ..packages.pypi_client import PyPIClient

DEBOUNCE_SECONDS = 0.3


class SearchSession:
    """Debounced, superseding search against the registry."""

    def __init__(self, client: PyPIClient, debounce: float = DEBOUNCE_SECONDS):
        self.client = client
        self.debounce = debounce
        self._token: CancellationToken | None = None
        self.busy = 0

    async def query(self, keyword: str, page: int = 1) -> SearchResult | None:
        """
        Run a search after the debounce delay.

        Returns:
            The result page, or None if a newer query superseded this one

        Raises:
            NoResults: If the page has no results
            RegistryError: If the request fails
        """
        if self._token:
            self._token.cancel()
        token = CancellationToken()
        self._token = token

        self.busy += 1
        try:
            if self.debounce:
                await run_cancellable(asyncio.sleep(self.debounce), token)
            return await self.client.search(keyword, page, token)
        except OperationCancelled:
            pilot_logger.debug(f"Search for {keyword!r} page {page} superseded")
            return None
        finally:
            self.busy -= 1
            if self._token is token:
                self._token = None

    def close(self):
        """Cancel any in-flight query."""
        if self._token:
            self._token.cancel()
            self._token = None
