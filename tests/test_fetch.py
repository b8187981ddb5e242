import json
import logging

import httpx

from conftest import SEARCH_URL, merge_result, request_query
from gov24.config import Settings
from gov24.fetch import (
    FALLBACK_TITLE,
    PORTAL_LINK_LABEL,
    SEARCH_SORT_FIELD,
    Link,
    ServiceItem,
    map_record,
    match_key,
    normalize_url,
    search_services,
    strip_html,
)


# ---------------------------------------------------------------------------
# Text and URL helpers
# ---------------------------------------------------------------------------

def test_strip_html_removes_tags_and_decodes_entities():
    raw = "  <b>주민등록</b>&amp;<em>초본</em> &lt;교부&gt; &quot;온라인&quot; &#39;무료&#39; "
    assert strip_html(raw) == "주민등록&초본 <교부> \"온라인\" '무료'"


def test_strip_html_handles_missing_values():
    assert strip_html(None) == ""
    assert strip_html("") == ""
    assert strip_html(123) == "123"


def test_normalize_url_shapes():
    assert normalize_url("https://www.gov.kr/a") == "https://www.gov.kr/a"
    assert normalize_url("http://example.kr/b") == "http://example.kr/b"
    assert normalize_url("//plus.gov.kr/c") == "https://plus.gov.kr/c"
    assert normalize_url("/svc/123") == "https://www.gov.kr/svc/123"
    assert normalize_url("portal/abc") == "https://www.gov.kr/portal/abc"
    assert normalize_url("  /svc/1  ") == "https://www.gov.kr/svc/1"


def test_normalize_url_empty_is_none():
    assert normalize_url(None) is None
    assert normalize_url("") is None
    assert normalize_url("   ") is None


def test_normalize_url_is_idempotent():
    for raw in ["portal/abc", "/svc/123", "//plus.gov.kr/c", "https://www.gov.kr/x"]:
        once = normalize_url(raw)
        assert normalize_url(once) == once


# ---------------------------------------------------------------------------
# Record mapping
# ---------------------------------------------------------------------------

def test_map_record_full_row():
    item = map_record({
        "DOCID": "D-1",
        "TITLE": "<strong>주민등록등본</strong> 발급",
        "CONTENT": "주민등록표 등본을 발급합니다.",
        "GOV24_URL": "/svc/123",
    })
    assert item == ServiceItem(
        id="D-1",
        title="주민등록등본 발급",
        summary="주민등록표 등본을 발급합니다.",
        links=[Link(label=PORTAL_LINK_LABEL, url="https://www.gov.kr/svc/123")],
    )
    assert item.required_documents is None


def test_map_record_title_falls_through_alternate_fields():
    item = map_record({"TITLE": "", "PRCS_TYPE_NM": "  ", "SERVICE_NM": "<b>인감증명서</b> 발급"})
    assert item.title == "인감증명서 발급"


def test_map_record_uses_fallback_title_and_omits_summary():
    item = map_record({"TITLE": "<br/>", "CONTENT": "", "DEPARTMENT": None})
    assert item.title == FALLBACK_TITLE
    assert item.summary is None
    assert item.links is None
    assert item.id is None


def test_map_record_summary_and_link_priority():
    item = map_record({
        "TITLE": "토지대장 열람",
        "DSBLTY_CN": "열람 안내",
        "DEPARTMENT": "국토교통부",
        "DETAIL_URL": "detail/1",
        "MOBILE_URL": "https://m.gov.kr/1",
        "SRVC_ID": "S-9",
    })
    assert item.summary == "열람 안내"
    assert item.links[0].url == "https://www.gov.kr/detail/1"
    assert item.id == "S-9"


def test_to_dict_omits_absent_fields():
    item = ServiceItem(title="가족관계증명서", links=[Link("정부24 검색", "https://www.gov.kr/portal/search")])
    assert item.to_dict() == {
        "title": "가족관계증명서",
        "links": [{"label": "정부24 검색", "url": "https://www.gov.kr/portal/search"}],
    }


def test_match_key_uses_first_link_or_empty():
    assert match_key(ServiceItem(title="A")) == ("A", "")
    linked = ServiceItem(title="A", links=[Link("x", "https://a"), Link("y", "https://b")])
    assert match_key(linked) == ("A", "https://a")


# ---------------------------------------------------------------------------
# Search client
# ---------------------------------------------------------------------------

def _search(with_client, settings, handler, query, strict=False):
    return with_client(handler, lambda client: search_services(query, strict, settings, client))


def test_search_posts_fixed_payload(with_client, settings):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=merge_result([]))

    _search(with_client, settings, handler, "주민등록등본 발급")

    assert len(seen) == 1
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == SEARCH_URL
    assert json.loads(request.content) == {
        "query": "주민등록등본 발급",
        "startCount": "0",
        "listCount": "5",
        "collections": "IW_SERVICE",
        "sortField": SEARCH_SORT_FIELD,
        "docId": "",
    }


def test_search_returns_matching_service(with_client, settings):
    rows = [{"GOV24_URL": "/svc/123", "TITLE": "주민등록등본 발급"}]

    def handler(request):
        return httpx.Response(200, json=merge_result(rows))

    results = _search(with_client, settings, handler, "주민등록등본 발급")

    assert [item.title for item in results] == ["주민등록등본 발급"]
    assert results[0].links[0].url == "https://www.gov.kr/svc/123"


def test_search_reads_alternate_result_key(with_client, settings):
    rows = [{"GOV24_URL": "/svc/7", "TITLE": "Passport Reissue"}]

    def handler(request):
        return httpx.Response(200, json=merge_result(rows, key="IW_SERVICE"))

    results = _search(with_client, settings, handler, "passport")

    assert [item.title for item in results] == ["Passport Reissue"]


def test_search_filters_by_title_and_keeps_first_match(with_client, settings):
    rows = [
        {"GOV24_URL": "/svc/1", "TITLE": "건축물대장 열람"},
        {"TITLE": "인감증명서 발급", "DETAIL_URL": "/svc/2"},
        {"GOV24_URL": "/svc/3", "TITLE": "<b>인감증명서</b> 발급"},
        {"GOV24_URL": "/svc/4", "TITLE": "인감증명서 사실확인"},
    ]

    def handler(request):
        return httpx.Response(200, json=merge_result(rows))

    results = _search(with_client, settings, handler, "인감증명서", strict=True)

    assert len(results) == 1
    assert results[0].title == "인감증명서 발급"
    assert results[0].links[0].url == "https://www.gov.kr/svc/3"


def test_strict_search_does_not_fall_back(with_client, settings):
    rows = [{"GOV24_URL": "/svc/1", "TITLE": "토지대장 열람"}]

    def handler(request):
        return httpx.Response(200, json=merge_result(rows))

    assert _search(with_client, settings, handler, "등기권리증", strict=True) == []


def test_loose_search_falls_back_to_first_eligible_record(with_client, settings):
    rows = [
        {"TITLE": "No detail url", "CONTENT": "skipped"},
        {"GOV24_URL": "/svc/1", "TITLE": "토지대장 열람"},
        {"GOV24_URL": "/svc/2", "TITLE": "건축물대장 열람"},
    ]

    def handler(request):
        return httpx.Response(200, json=merge_result(rows))

    results = _search(with_client, settings, handler, "집 팔 때 서류", strict=False)

    assert [item.title for item in results] == ["토지대장 열람"]


def test_search_ignores_rows_without_detail_url(with_client, settings):
    rows = [{"TITLE": "주민등록등본 발급", "DETAIL_URL": "/svc/9"}]

    def handler(request):
        return httpx.Response(200, json=merge_result(rows))

    assert _search(with_client, settings, handler, "주민등록등본", strict=False) == []


def test_search_error_status_yields_empty(with_client, settings, caplog):
    def handler(request):
        return httpx.Response(503, json={"error": "unavailable"})

    with caplog.at_level(logging.WARNING, logger="gov24.fetch"):
        results = _search(with_client, settings, handler, "주민등록등본")

    assert results == []
    assert "503" in caplog.text


def test_search_network_error_yields_empty(with_client, settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    assert _search(with_client, settings, handler, "주민등록등본") == []


def test_search_malformed_body_yields_empty(with_client, settings):
    def handler(request):
        return httpx.Response(200, text="<html>maintenance</html>")

    assert _search(with_client, settings, handler, "주민등록등본") == []


def test_search_unexpected_shape_yields_empty(with_client, settings):
    def handler(request):
        return httpx.Response(200, json={"searchMergeResult": {"MERGE_COLLECTION": {"TITLE": "x"}}})

    assert _search(with_client, settings, handler, "x") == []


def test_search_disabled_without_url(with_client):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=merge_result([]))

    disabled = Settings(search_url="")
    assert with_client(handler, lambda client: search_services("x", False, disabled, client)) == []
    assert calls == []


def test_search_query_routing_helper(with_client, settings):
    def handler(request):
        title = f"{request_query(request)} 발급"
        return httpx.Response(200, json=merge_result([{"GOV24_URL": "/svc/1", "TITLE": title}]))

    results = _search(with_client, settings, handler, "가족관계증명서", strict=True)
    assert results[0].title == "가족관계증명서 발급"
