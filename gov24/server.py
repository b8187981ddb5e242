"""MCP server exposing the Gov24 requirements tool over streamable HTTP.

Run with ``python -m gov24.server``; host, port and endpoint path come from
``Settings`` (HOST, PORT, MCP_PATH).
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Annotated, List, Optional, Union

import uvicorn
from mcp.server.fastmcp import FastMCP
from mcp.types import CallToolResult, ToolAnnotations
from pydantic import BaseModel, Field
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse

from .config import Settings
from .main import Answer, answer_requirements


logger = logging.getLogger(__name__)

WIDGET_URI = "ui://gov24/widget.html"
WIDGET_PATH = Path(__file__).parent / "public" / "gov24-widget.html"

TOOL_DESCRIPTION = (
    '필요 서류를 추론할 수 있으면 documents 배열로 전달하세요. (예: ["등기권리증","인감증명서"])\n'
    "documents/items가 없으면 message를 그대로 검색합니다.\n"
    '예시1) 질문: "건물 팔려고 하는데 필요한 서류?"\n'
    '호출: {"documents":["등기권리증","신분증","인감증명서","인감도장","주민등록초본","토지대장","건축물대장","등기부등본"]}\n'
    '예시2) 질문: "주민등록등본 발급"\n'
    '호출: {"documents":["주민등록표등본(초본)교부"]}'
)


class LinkInput(BaseModel):
    label: Optional[str] = None
    url: str


class ItemInput(BaseModel):
    """A service the caller already identified."""

    id: Optional[str] = None
    title: str
    summary: Optional[str] = None
    required_documents: Optional[List[str]] = None
    links: Optional[List[LinkInput]] = None


def build_tool_result(answer: Answer) -> CallToolResult:
    return CallToolResult(
        content=[],
        structuredContent=answer.structured(),
        isError=answer.is_error,
    )


def create_server(settings: Settings) -> FastMCP:
    mcp = FastMCP(
        "gov24-connector",
        host=settings.host,
        port=settings.port,
        streamable_http_path=settings.mcp_path,
        stateless_http=True,
        json_response=True,
    )

    @mcp.resource(WIDGET_URI, name="gov24-widget", mime_type="text/html+skybridge")
    def gov24_widget() -> str:
        return WIDGET_PATH.read_text(encoding="utf-8")

    @mcp.tool(
        name="gov24_requirements",
        title="정부24 민원 서류 안내",
        description=TOOL_DESCRIPTION,
        annotations=ToolAnnotations(readOnlyHint=True, openWorldHint=True),
        meta={
            "openai/outputTemplate": WIDGET_URI,
            "openai/toolInvocation/invoking": "정부24 민원 분석 중",
            "openai/toolInvocation/invoked": "정부24 민원 분석 완료",
        },
        structured_output=False,
    )
    async def gov24_requirements(
        message: Annotated[str, Field(min_length=1)],
        documents: Optional[List[str]] = None,
        items: Optional[List[Union[str, ItemInput]]] = None,
    ) -> CallToolResult:
        plain_items = None
        if items is not None:
            plain_items = [
                entry if isinstance(entry, str) else entry.model_dump(exclude_none=True)
                for entry in items
            ]
        answer = await answer_requirements(message, documents, plain_items, settings)
        return build_tool_result(answer)

    @mcp.custom_route("/", methods=["GET"])
    async def index(request: Request) -> PlainTextResponse:
        return PlainTextResponse("Gov24 MCP server")

    return mcp


def create_app(settings: Settings):
    app = create_server(settings).streamable_http_app()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["POST", "GET", "DELETE", "OPTIONS"],
        allow_headers=["content-type", "mcp-session-id"],
        expose_headers=["Mcp-Session-Id"],
    )
    return app


def main() -> None:
    logging.basicConfig(stream=sys.stderr, level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    settings = Settings.from_env()
    logger.info("Gov24 MCP server listening on http://localhost:%s%s", settings.port, settings.mcp_path)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
