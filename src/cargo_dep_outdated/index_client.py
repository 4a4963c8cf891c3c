"""Registry index client for the crates.io sparse index.

Purpose
-------
Answer "which versions of this crate exist?" by fetching the crate's file
from a sparse registry index over HTTP.

Contents
--------
* :class:`CratesIndexClient` - Async client implementing the package index protocol
* :func:`index_path` - Relative index path of a crate name

System Role
-----------
The registry index collaborator of the version classifier. Transport
errors are translated into :class:`IndexUnavailable` so a single failing
crate never aborts a report run.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from types import TracebackType

import httpx
from pydantic import ValidationError

from . import __init__conf__
from .errors import IndexUnavailable
from .schemas import IndexLineSchema

logger = logging.getLogger(__name__)

DEFAULT_INDEX_URL = "https://index.crates.io"
DEFAULT_TIMEOUT = 30.0


def index_path(name: str) -> str:
    """Return the sparse index path of a crate (``se/rd/serde``, ``3/l/log``...)."""
    lowered = name.lower()
    if not lowered:
        raise ValueError("Crate name must not be empty")
    if len(lowered) <= 2:
        return f"{len(lowered)}/{lowered}"
    if len(lowered) == 3:
        return f"3/{lowered[0]}/{lowered}"
    return f"{lowered[:2]}/{lowered[2:4]}/{lowered}"


def _iter_versions(name: str, body: str) -> Iterator[str]:
    """Yield non-yanked versions from an index file, one JSON document per line."""
    for line in body.splitlines():
        if not line.strip():
            continue
        try:
            entry = IndexLineSchema.model_validate(json.loads(line))
        except (json.JSONDecodeError, ValidationError):
            logger.debug("Skipping malformed index line for %s", name)
            continue
        if not entry.yanked:
            yield entry.vers


class CratesIndexClient:
    """Async sparse-index client.

    Use as an async context manager so the underlying connection pool is
    closed::

        async with CratesIndexClient() as index:
            versions = list(await index.available_versions("serde"))

    Attributes:
        index_url: Base URL of the sparse index.
        timeout: Seconds allowed per HTTP request.
    """

    def __init__(
        self,
        index_url: str = DEFAULT_INDEX_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self.index_url = index_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def __repr__(self) -> str:
        return f"CratesIndexClient(index_url={self.index_url!r}, timeout={self.timeout})"

    def _get_headers(self) -> dict[str, str]:
        return {
            "User-Agent": f"{__init__conf__.name}/{__init__conf__.version}",
            "Accept": "text/plain, application/json",
        }

    async def __aenter__(self) -> CratesIndexClient:
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers=self._get_headers(),
            transport=self._transport,
            follow_redirects=True,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def url_for(self, name: str) -> str:
        return f"{self.index_url}/{index_path(name)}"

    async def available_versions(self, name: str) -> Iterator[str]:
        """Return the published, non-yanked versions of ``name``.

        Raises:
            IndexUnavailable: If the crate is unknown or the index cannot be
                reached in time.
        """
        if self._client is None:
            raise RuntimeError("CratesIndexClient must be used as an async context manager")
        url = self.url_for(name)
        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as exc:
            raise IndexUnavailable(name, f"request timed out after {self.timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise IndexUnavailable(name, f"request failed: {exc}") from exc

        if response.status_code == httpx.codes.NOT_FOUND:
            raise IndexUnavailable(name, "crate not found in the index")
        if response.status_code >= 400:
            raise IndexUnavailable(name, f"index returned HTTP {response.status_code}")

        logger.debug("Fetched %s", url)
        return _iter_versions(name, response.text)


__all__ = [
    "DEFAULT_INDEX_URL",
    "CratesIndexClient",
    "index_path",
]
