from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import quote

import httpx

from .config import Settings
from .fetch import Link, ServiceItem, match_key, search_services


logger = logging.getLogger(__name__)

PORTAL_SEARCH_URL = "https://www.gov.kr/portal/search"
PORTAL_SEARCH_LABEL = "정부24 검색"
NO_RESULTS_REPLY = "검색 결과가 없습니다."


# ---------------------------------------------------------------------------
# Query extraction
# ---------------------------------------------------------------------------

@dataclass
class QueryPlan:
    queries: List[str] = field(default_factory=list)
    # No loose fallback when the caller named services or documents explicitly.
    strict: bool = False


def _item_title(entry: Any) -> Any:
    if isinstance(entry, Mapping):
        return entry.get("title")
    return getattr(entry, "title", None)


def extract_item_queries(items: Optional[Sequence[Any]]) -> List[str]:
    queries: List[str] = []
    for entry in items or []:
        if isinstance(entry, str):
            text = entry.strip()
        else:
            title = _item_title(entry)
            text = title.strip() if isinstance(title, str) else ""
        if text:
            queries.append(text)
    return queries


def extract_document_queries(documents: Optional[Sequence[Any]]) -> List[str]:
    texts = ("" if doc is None else str(doc).strip() for doc in documents or [])
    return [text for text in texts if text]


def extract_queries(
    items: Optional[Sequence[Any]],
    documents: Optional[Sequence[Any]],
    message: Optional[str],
) -> QueryPlan:
    """Pick the query source by precedence: items, then documents, then message.

    Only the first source that yields at least one query is used. Matching is
    strict whenever ``items`` or ``documents`` was supplied at all, even if it
    produced no query.
    """

    strict = items is not None or documents is not None

    item_queries = extract_item_queries(items)
    if item_queries:
        return QueryPlan(item_queries, strict)

    document_queries = extract_document_queries(documents)
    if document_queries:
        return QueryPlan(document_queries, strict)

    text = (message or "").strip()
    return QueryPlan([text] if text else [], strict)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def portal_search_link(query: str) -> Link:
    encoded = quote(query, safe="-_.!~*'()")
    return Link(label=PORTAL_SEARCH_LABEL, url=f"{PORTAL_SEARCH_URL}?searchQuery={encoded}")


def ensure_links(item: ServiceItem, query: str) -> ServiceItem:
    if item.links:
        return item
    return replace(item, links=[portal_search_link(query)])


async def _search_all(
    plan: QueryPlan, settings: Settings, client: httpx.AsyncClient
) -> List[ServiceItem]:
    seen = set()
    matches: List[ServiceItem] = []
    for query in plan.queries:
        for item in await search_services(query, plan.strict, settings, client):
            key = match_key(item)
            if key in seen:
                continue
            seen.add(key)
            matches.append(item)
    return matches


async def resolve(
    message: Optional[str],
    documents: Optional[Sequence[Any]] = None,
    items: Optional[Sequence[Any]] = None,
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> List[ServiceItem]:
    """Search every extracted query in order and merge unique matches."""

    settings = settings or Settings.from_env()
    plan = extract_queries(items, documents, message)

    if client is None:
        async with httpx.AsyncClient(timeout=settings.request_timeout) as own_client:
            matches = await _search_all(plan, settings, own_client)
    else:
        matches = await _search_all(plan, settings, client)

    if not matches:
        return []
    return [ensure_links(item, item.title) for item in matches]


# ---------------------------------------------------------------------------
# Reply
# ---------------------------------------------------------------------------

def build_reply(message: Optional[str], matches: Sequence[ServiceItem]) -> str:
    if not matches:
        return "\n".join([
            "요청하신 민원이 명확하지 않아요.",
            '예: "전세계약 할 건데 필요한 서류 알려줘", "가족관계증명서 발급"처럼 구체적으로 말씀해 주세요.',
        ])

    lines = ["아래 민원과 발급 필요 서류를 정리했어요. 상세 요건은 신청 페이지에서 다시 확인해 주세요."]

    for index, item in enumerate(matches, start=1):
        lines.append("")
        lines.append(f"{index}) {item.title}")
        if item.summary:
            lines.append(f"- 안내: {item.summary}")
        if item.required_documents:
            lines.append(f"- 필요 서류: {', '.join(item.required_documents)}")
        if item.links:
            lines.append("- 바로가기:")
            lines.extend(f"  - {link.label}: {link.url}" for link in item.links)

    lines.append("")
    lines.append("추가로 상황(전입 예정일, 세대 분리 여부 등)을 알려주면 더 정확히 안내할게요.")
    return "\n".join(lines)


@dataclass
class Answer:
    message: str
    reply: str
    matches: List[ServiceItem]
    is_error: bool = False

    def structured(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "reply": self.reply,
            "matches": [item.to_dict() for item in self.matches],
        }


async def answer_requirements(
    message: Optional[str],
    documents: Optional[Sequence[Any]] = None,
    items: Optional[Sequence[Any]] = None,
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Answer:
    """Resolve a requirements request into the reply payload."""

    logger.info(
        "gov24_requirements args: %s",
        json.dumps({"message": message, "documents": documents, "items": items}, ensure_ascii=False, default=str),
    )
    text = (message or "").strip()
    if not text and items is None and documents is None:
        logger.warning("gov24_requirements received an empty request")

    matches = await resolve(text, documents, items, settings, client)
    logger.info("gov24_requirements message: %s", text)
    logger.info("gov24_requirements matches: %d", len(matches))

    if not matches:
        logger.warning("gov24_requirements found no matches for message")
        return Answer(message=text, reply=NO_RESULTS_REPLY, matches=[], is_error=True)

    return Answer(message=text, reply=build_reply(text, matches), matches=matches)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m gov24.main",
        description="Find Gov24 services and required documents for a request.",
    )
    parser.add_argument("message", help="Free-text request, e.g. '주민등록등본 발급'")
    parser.add_argument("--document", dest="documents", action="append", help="Required document name (repeatable)")
    parser.add_argument("--item", dest="items", action="append", help="Service title to look up (repeatable)")
    parser.add_argument("--json", action="store_true", help="Print the structured payload instead of the reply")
    return parser.parse_args(argv)


def main(argv: List[str] | None = None) -> None:
    argv = list(sys.argv[1:] if argv is None else argv)
    args = _parse_args(argv)
    logging.basicConfig(stream=sys.stderr, level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    answer = asyncio.run(answer_requirements(args.message, args.documents, args.items))
    if args.json:
        print(json.dumps(answer.structured(), ensure_ascii=False, indent=2))
    else:
        print(answer.reply)

    if answer.is_error:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
