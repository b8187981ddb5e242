"""Shared fixtures: a fake Gov24 search endpoint behind httpx.MockTransport."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, List

import httpx
import pytest

from gov24.config import Settings


SEARCH_URL = "https://search.test/api/iwcas/guide/v1.0/search/mergeResult"


def merge_result(rows: List[Dict[str, Any]], key: str = "MERGE_COLLECTION") -> Dict[str, Any]:
    return {"searchMergeResult": {key: rows}}


def request_query(request: httpx.Request) -> str:
    return json.loads(request.content)["query"]


@pytest.fixture
def settings() -> Settings:
    return Settings(search_url=SEARCH_URL, list_count=5)


@pytest.fixture
def with_client() -> Callable[..., Any]:
    """Run ``func(client)`` against a client routed to ``handler``."""

    def _run(handler: Callable[[httpx.Request], httpx.Response], func: Callable[[httpx.AsyncClient], Any]) -> Any:
        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                return await func(client)

        return asyncio.run(go())

    return _run
