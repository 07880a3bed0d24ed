"""
PyPI Client for Package Discovery

This module provides the registry client used to enrich installed packages
with their latest versions, list released versions and search PyPI.
"""

import asyncio
import re
from typing import Any

import httpx
from bs4 import BeautifulSoup

from ..cancellation import CancellationToken, run_cancellable
from ..config import PYPI_API_URL, PYPI_SEARCH_URL, pilot_logger
from ..errors import NoResults, OperationCancelled, RegistryError
from .models import SearchItem, SearchResult

LATEST_VERSION_TIMEOUT = 5.0
VERSION_LIST_TIMEOUT = 10.0
SEARCH_TIMEOUT = 30.0

# Applied when searching with an empty keyword so the page has results
DEFAULT_CATEGORY = "Development Status :: 5 - Production/Stable"

_LEADING_INT = re.compile(r"\d+")


def version_sort_key(version: str) -> list[int]:
    """Leading integer run of each dotted component; non-numeric parts count as 0."""
    key = []
    for part in version.split("."):
        match = _LEADING_INT.match(part)
        key.append(int(match.group()) if match else 0)
    return key


def sort_versions_descending(versions: list[str]) -> list[str]:
    """Sort versions newest first by dotted-numeric comparison."""
    keys = {v: version_sort_key(v) for v in versions}
    width = max((len(k) for k in keys.values()), default=0)
    return sorted(
        versions,
        key=lambda v: keys[v] + [0] * (width - len(keys[v])),
        reverse=True
    )


class PyPIClient:
    """Client for PyPI operations."""

    def __init__(
        self,
        api_url: str = PYPI_API_URL,
        search_url: str = PYPI_SEARCH_URL,
        transport: httpx.AsyncBaseTransport | None = None
    ):
        self.api_url = api_url.rstrip('/')
        self.search_url = search_url
        self.transport = transport
        self.session: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "PyPIClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    def _get_session(self) -> httpx.AsyncClient:
        """Get or create the HTTP session."""
        if self.session is None:
            self.session = httpx.AsyncClient(
                transport=self.transport,
                follow_redirects=True,
                headers={"Accept": "application/json, text/html"}
            )
        return self.session

    def use_endpoints(self, api_url: str, search_url: str):
        """Point later requests at different registry endpoints."""
        self.api_url = api_url.rstrip('/')
        self.search_url = search_url
        pilot_logger.info(f"Registry endpoints set to {self.api_url} and {self.search_url}")

    async def aclose(self):
        """Close the HTTP session."""
        if self.session:
            await self.session.aclose()
            self.session = None

    async def _get(
        self,
        url: str,
        timeout: float,
        token: CancellationToken | None,
        params: dict[str, Any] | None = None
    ) -> httpx.Response:
        # timeout bounds the whole request, not each transport phase
        async with asyncio.timeout(timeout):
            return await run_cancellable(
                self._get_session().get(url, params=params, timeout=timeout),
                token
            )

    async def _get_package_document(
        self,
        package_name: str,
        timeout: float,
        token: CancellationToken | None
    ) -> dict[str, Any]:
        url = f"{self.api_url}/{package_name}/json"
        response = await self._get(url, timeout, token)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected metadata document for {package_name}")
        return data

    async def latest_version(self, package_name: str, token: CancellationToken | None = None) -> str | None:
        """
        Get the latest released version of a package.

        Best-effort: any failure, including cancellation, yields None.
        """
        try:
            data = await self._get_package_document(package_name, LATEST_VERSION_TIMEOUT, token)
        except (httpx.HTTPError, ValueError, TimeoutError, OperationCancelled) as e:
            pilot_logger.debug(f"Could not get latest version for {package_name}: {e!r}")
            return None

        info = data.get("info") or {}
        version = info.get("version") if isinstance(info, dict) else None
        return version or None

    async def version_list(self, package_name: str, token: CancellationToken | None = None) -> list[str]:
        """
        Get released versions of a package, newest first.

        Releases without files are skipped. Best-effort: any failure yields
        an empty list.
        """
        try:
            data = await self._get_package_document(package_name, VERSION_LIST_TIMEOUT, token)
        except (httpx.HTTPError, ValueError, TimeoutError, OperationCancelled) as e:
            pilot_logger.debug(f"Could not get versions for {package_name}: {e!r}")
            return []

        releases = data.get("releases") or {}
        if not isinstance(releases, dict):
            return []
        versions = [v for v, files in releases.items() if isinstance(files, list) and files]
        return sort_versions_descending(versions)

    async def search(
        self,
        keyword: str,
        page: int = 1,
        token: CancellationToken | None = None
    ) -> SearchResult:
        """
        Fetch one page of search results.

        Raises:
            NoResults: If the page has no result list
            RegistryError: If the request fails
            OperationCancelled: If the token fired during the request
        """
        params: dict[str, Any] = {"q": keyword, "page": page}
        if not keyword:
            params["c"] = DEFAULT_CATEGORY

        try:
            response = await self._get(self.search_url, SEARCH_TIMEOUT, token, params=params)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise RegistryError(f"Search request failed: {e}") from e
        except TimeoutError as e:
            raise RegistryError(f"Search request timed out after {SEARCH_TIMEOUT} seconds") from e

        return parse_search_page(response.text, page)


def parse_search_page(markup: str, page: int = 1) -> SearchResult:
    """Extract result items and the page count from search page markup."""
    soup = BeautifulSoup(markup, "html.parser")

    result_list = soup.find("ul", attrs={"aria-label": "Search results"})
    if result_list is None:
        raise NoResults("No results found")

    items = []
    for entry in result_list.find_all("li", recursive=False):
        item = _parse_search_item(entry)
        if item:
            items.append(item)

    total_pages = 1
    pagination = soup.select_one("div.button-group--pagination")
    if pagination is not None:
        anchors = pagination.find_all("a")
        if len(anchors) >= 2:
            text = anchors[-2].get_text(strip=True)
            total_pages = int(text) if text.isdigit() and int(text) > 0 else 1
        if total_pages < page:
            total_pages = page

    return SearchResult(items=items, total_pages=total_pages)


def _parse_search_item(entry) -> SearchItem | None:
    title = entry.find("h3")
    if title is None:
        return None
    spans = title.find_all("span", recursive=False)

    name_tag = title.find("span", class_="package-snippet__name") or (spans[0] if spans else None)
    version_tag = title.find("span", class_="package-snippet__version") or (spans[1] if len(spans) > 1 else None)
    if name_tag is None:
        return None

    time_tag = title.find("time")
    description_tag = entry.find("p", class_="package-snippet__description") or entry.find("p")

    return SearchItem(
        name=name_tag.get_text(strip=True),
        version=version_tag.get_text(strip=True) if version_tag else "",
        description=description_tag.get_text(strip=True) if description_tag else "",
        updated=time_tag.get("datetime") if time_tag else None
    )
