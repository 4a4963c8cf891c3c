"""Sparse index client stories: paths, parsing and transport failures.

The client never talks to the network here; ``httpx.MockTransport``
answers every request.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from cargo_dep_outdated.errors import IndexUnavailable
from cargo_dep_outdated.index_client import CratesIndexClient, index_path


def index_body(*entries: tuple[str, bool]) -> str:
    return "\n".join(json.dumps({"name": "serde", "vers": vers, "yanked": yanked, "deps": []}) for vers, yanked in entries)


def fetch(handler: httpx.MockTransport, name: str = "serde") -> list[str]:
    async def run() -> list[str]:
        async with CratesIndexClient("https://index.example", transport=handler) as index:
            return list(await index.available_versions(name))

    return asyncio.run(run())


# ════════════════════════════════════════════════════════════════════════════
# index_path: sparse index layout
# ════════════════════════════════════════════════════════════════════════════


@pytest.mark.os_agnostic
@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("a", "1/a"),
        ("ab", "2/ab"),
        ("abc", "3/a/abc"),
        ("serde", "se/rd/serde"),
        ("Inflector", "in/fl/inflector"),
    ],
)
def test_index_path_follows_sparse_layout(name: str, expected: str) -> None:
    assert index_path(name) == expected


@pytest.mark.os_agnostic
def test_index_path_rejects_empty_names() -> None:
    with pytest.raises(ValueError):
        index_path("")


# ════════════════════════════════════════════════════════════════════════════
# CratesIndexClient: fetching versions
# ════════════════════════════════════════════════════════════════════════════


@pytest.mark.os_agnostic
def test_client_returns_non_yanked_versions() -> None:
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        return httpx.Response(200, text=index_body(("1.0.0", False), ("1.0.1", True), ("1.1.0", False)))

    versions = fetch(httpx.MockTransport(handler))

    assert versions == ["1.0.0", "1.1.0"]
    assert requested == ["https://index.example/se/rd/serde"]


@pytest.mark.os_agnostic
def test_client_skips_malformed_lines() -> None:
    body = index_body(("1.0.0", False)) + "\nnot json\n" + json.dumps({"name": "serde"}) + "\n\n"

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=body)

    assert fetch(httpx.MockTransport(handler)) == ["1.0.0"]


@pytest.mark.os_agnostic
def test_client_sends_a_user_agent() -> None:
    agents: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        agents.append(request.headers["User-Agent"])
        return httpx.Response(200, text="")

    fetch(httpx.MockTransport(handler))

    assert agents[0].startswith("cargo_dep_outdated/")


@pytest.mark.os_agnostic
def test_unknown_crate_raises_index_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    with pytest.raises(IndexUnavailable, match="not found"):
        fetch(httpx.MockTransport(handler), "no-such-crate")


@pytest.mark.os_agnostic
def test_server_error_raises_index_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    with pytest.raises(IndexUnavailable, match="HTTP 503"):
        fetch(httpx.MockTransport(handler))


@pytest.mark.os_agnostic
def test_transport_timeout_raises_index_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(IndexUnavailable, match="timed out"):
        fetch(httpx.MockTransport(handler))


@pytest.mark.os_agnostic
def test_connection_error_raises_index_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(IndexUnavailable, match="request failed"):
        fetch(httpx.MockTransport(handler))


@pytest.mark.os_agnostic
def test_client_must_be_opened_before_use() -> None:
    client = CratesIndexClient()

    with pytest.raises(RuntimeError, match="context manager"):
        asyncio.run(client.available_versions("serde"))


@pytest.mark.os_agnostic
def test_client_rejects_non_positive_timeout() -> None:
    with pytest.raises(ValueError, match="timeout"):
        CratesIndexClient(timeout=0)
