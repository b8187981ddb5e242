from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

import httpx

from .config import Settings


logger = logging.getLogger(__name__)

GOV24_ORIGIN = "https://www.gov.kr"
FALLBACK_TITLE = "정부24 민원"
PORTAL_LINK_LABEL = "정부24 바로가기"

SEARCH_COLLECTION = "IW_SERVICE"
SEARCH_SORT_FIELD = "WEIGHT/DESC,RANK/DESC,INQ_CNT/DESC,TYPE_SN/ASC,UID/ASC"
# A query surfaces its single best match, not a ranked list.
MAX_RESULTS_PER_QUERY = 1

# Candidate source fields per semantic field, highest priority first.
TITLE_FIELDS = ("TITLE", "PRCS_TYPE_NM", "SERVICE_NM", "SERVICE_NAME")
SUMMARY_FIELDS = ("CONTENT", "DSBLTY_CN", "DEPARTMENT")
URL_FIELDS = ("GOV24_URL", "DETAIL_URL", "SITE_MVMN_URL", "BUTTON_URL", "MOBILE_URL")
ID_FIELDS = ("DOCID", "SERVICE_ID", "SRVC_ID")
# Records without this field are never eligible.
DETAIL_URL_FIELD = "GOV24_URL"
RESULT_LIST_KEYS = ("MERGE_COLLECTION", "IW_SERVICE")

_TAG_RE = re.compile(r"<[^>]*>")
_ENTITIES = (
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
)


@dataclass
class Link:
    label: str
    url: str

    def to_dict(self) -> Dict[str, str]:
        return {"label": self.label, "url": self.url}


@dataclass
class ServiceItem:
    """Normalised, display-ready representation of one government service."""

    title: str
    id: Optional[str] = None
    summary: Optional[str] = None
    required_documents: Optional[List[str]] = None
    links: Optional[List[Link]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.id is not None:
            data["id"] = self.id
        data["title"] = self.title
        if self.summary is not None:
            data["summary"] = self.summary
        if self.required_documents is not None:
            data["required_documents"] = list(self.required_documents)
        if self.links is not None:
            data["links"] = [link.to_dict() for link in self.links]
        return data


def strip_html(text: Any) -> str:
    """Remove markup tags, decode the common HTML entities and trim."""

    value = "" if text is None else str(text)
    value = _TAG_RE.sub("", value)
    for entity, char in _ENTITIES:
        value = value.replace(entity, char)
    return value.strip()


def normalize_url(raw_url: Any) -> Optional[str]:
    """Turn a Gov24 link field into an absolute URL.

    Expected formats:
    - http(s)://... (returned as is)
    - //host/path (protocol-relative)
    - /path (root-relative to www.gov.kr)
    - path (bare segment, also relative to www.gov.kr)
    """

    value = "" if raw_url is None else str(raw_url).strip()
    if not value:
        return None
    if value.startswith("http://") or value.startswith("https://"):
        return value
    if value.startswith("//"):
        return f"https:{value}"
    if value.startswith("/"):
        return f"{GOV24_ORIGIN}{value}"
    return f"{GOV24_ORIGIN}/{value}"


def _first_text(row: Mapping[str, Any], fields: Iterable[str]) -> str:
    for field in fields:
        text = strip_html(row.get(field))
        if text:
            return text
    return ""


def _first_raw(row: Mapping[str, Any], fields: Iterable[str]) -> Any:
    for field in fields:
        value = row.get(field)
        if value:
            return value
    return None


def map_record(row: Mapping[str, Any]) -> ServiceItem:
    """Map one raw search record onto a ServiceItem."""

    title = _first_text(row, TITLE_FIELDS)
    summary = _first_text(row, SUMMARY_FIELDS)
    link = normalize_url(_first_raw(row, URL_FIELDS))

    return ServiceItem(
        id=_first_raw(row, ID_FIELDS),
        title=title or FALLBACK_TITLE,
        summary=summary or None,
        links=[Link(label=PORTAL_LINK_LABEL, url=link)] if link else None,
    )


def match_key(item: ServiceItem) -> Tuple[str, str]:
    """Identity used to deduplicate matches: (title, first link url)."""

    first_url = item.links[0].url if item.links else ""
    return item.title, first_url


def _result_rows(data: Any) -> List[Mapping[str, Any]]:
    # The endpoint has answered under either key depending on the collection.
    merge = data.get("searchMergeResult") if isinstance(data, dict) else None
    if not isinstance(merge, dict):
        return []
    rows = next((merge[key] for key in RESULT_LIST_KEYS if merge.get(key)), None)
    if not isinstance(rows, list):
        return []
    return [row for row in rows if isinstance(row, Mapping)]


def _eligible_items(rows: List[Mapping[str, Any]]) -> Iterator[ServiceItem]:
    for row in rows:
        if not row.get(DETAIL_URL_FIELD):
            continue
        yield map_record(row)


def _collect(
    items: Iterable[ServiceItem],
    accept: Optional[Callable[[ServiceItem], bool]] = None,
) -> List[ServiceItem]:
    seen = set()
    results: List[ServiceItem] = []
    for item in items:
        key = match_key(item)
        if not item.title or key in seen:
            continue
        if accept is not None and not accept(item):
            continue
        seen.add(key)
        results.append(item)
    return results


def build_search_payload(query: str, settings: Settings) -> Dict[str, str]:
    return {
        "query": query,
        "startCount": "0",
        "listCount": str(settings.list_count),
        "collections": SEARCH_COLLECTION,
        "sortField": SEARCH_SORT_FIELD,
        "docId": "",
    }


async def _post_search(
    client: httpx.AsyncClient, url: str, payload: Dict[str, str]
) -> Optional[Any]:
    resp = await client.post(url, json=payload)
    if not resp.is_success:
        logger.warning("gov24 search request failed with status %s", resp.status_code)
        return None
    return resp.json()


async def search_services(
    query: str,
    strict: bool = False,
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> List[ServiceItem]:
    """Search Gov24 for one query and return at most one matching service.

    Titles must contain the query (case-insensitive). When nothing matches
    and ``strict`` is false, the first eligible record is returned instead.
    Any HTTP or decoding failure yields an empty list.
    """

    settings = settings or Settings.from_env()
    if not settings.search_url:
        return []

    payload = build_search_payload(query, settings)
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=settings.request_timeout) as own_client:
                data = await _post_search(own_client, settings.search_url, payload)
        else:
            data = await _post_search(client, settings.search_url, payload)
    except (httpx.HTTPError, ValueError):
        logger.exception("gov24 search failed for query %r", query)
        return []

    rows = _result_rows(data)
    wanted = query.lower()

    results = _collect(
        _eligible_items(rows),
        accept=(lambda item: wanted in item.title.lower()) if wanted else None,
    )
    if not results and not strict:
        results = _collect(_eligible_items(rows))

    return results[:MAX_RESULTS_PER_QUERY]
