import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()

DEFAULT_SEARCH_URL = "https://plus.gov.kr/api/iwcas/guide/v1.0/search/mergeResult"


def _int_env(key: str, default: str) -> int:
    raw = os.getenv(key, default)
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer, got {raw!r}.") from None


def _float_env(key: str, default: str) -> float:
    raw = os.getenv(key, default)
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number, got {raw!r}.") from None


@dataclass(frozen=True)
class Settings:
    """Runtime configuration loaded from environment variables."""

    # Gov24 integrated search endpoint; empty disables searching
    search_url: str = DEFAULT_SEARCH_URL
    list_count: int = 10
    request_timeout: float = 15.0

    # MCP transport
    mcp_path: str = "/gov24/mcp"
    host: str = "0.0.0.0"
    port: int = 3000

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables.

        Optional overrides:
        - GOV24_SEARCH_URL
        - GOV24_LIST_COUNT
        - GOV24_TIMEOUT
        - MCP_PATH
        - HOST
        - PORT
        """

        return cls(
            search_url=os.getenv("GOV24_SEARCH_URL", DEFAULT_SEARCH_URL),
            list_count=_int_env("GOV24_LIST_COUNT", "10"),
            request_timeout=_float_env("GOV24_TIMEOUT", "15"),
            mcp_path=os.getenv("MCP_PATH", "/gov24/mcp"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=_int_env("PORT", "3000"),
        )
