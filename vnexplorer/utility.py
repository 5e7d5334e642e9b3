"""HTTP helpers and error types shared by the VNDB and bookmark clients."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .constants import ErrorCode, HTTP_TIMEOUT

logger = logging.getLogger(__name__)


class ExplorerError(Exception):
    """Base error carrying an :class:`ErrorCode`."""

    def __init__(self, code: ErrorCode, *values: str) -> None:
        if code is ErrorCode.REQUEST_REJECTED:
            message = f"Request to '{values[0]}' was rejected"
            if len(values) > 1 and values[1]:
                message = f"{message}: {values[1]}"
        elif code is ErrorCode.STORAGE_FAILURE:
            message = f"Bookmark storage failed: {values[0] if values else 'unknown error'}"
        else:  # pragma: no cover - defensive programming
            message = "Unknown explorer error"
        super().__init__(message)
        self.code = code


class VndbError(ExplorerError):
    """Raised when the VNDB API rejects a request or cannot be reached."""

    def __init__(self, target: str, status: Optional[int] = None, detail: str = "") -> None:
        label = f"{target} (status={status})" if status is not None else target
        super().__init__(ErrorCode.REQUEST_REJECTED, label, detail)
        self.status = status
        self.detail = detail


class BookmarkStoreError(ExplorerError):
    def __init__(self, detail: str, status: Optional[int] = None) -> None:
        super().__init__(ErrorCode.STORAGE_FAILURE, detail)
        self.status = status


_DEFAULT_HEADERS: Dict[str, str] = {
    "Accept": "application/json",
    "Connection": "keep-alive",
    "User-Agent": "VNDB-Explorer/1.0",
}

# httpx セッション管理
_async_client: Optional[httpx.AsyncClient] = None


async def _get_async_client() -> httpx.AsyncClient:
    """Get or create the shared httpx async client."""
    global _async_client
    if _async_client is None or _async_client.is_closed:
        _async_client = httpx.AsyncClient(headers=_DEFAULT_HEADERS, timeout=HTTP_TIMEOUT)
    return _async_client


async def close_session() -> None:
    """Close the shared httpx client."""
    global _async_client
    if _async_client is not None and not _async_client.is_closed:
        await _async_client.aclose()
    _async_client = None


async def async_post_json(
    url: str,
    body: Dict[str, Any],
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> Any:
    """POST ``body`` as JSON and return the decoded response.

    Failures are not retried; every one surfaces as :class:`VndbError`.

    Args:
        url: absolute endpoint URL
        body: JSON-serialisable request body
        client: client to use instead of the shared one
    """
    try:
        http = client or await _get_async_client()
        response = await http.post(url, json=body)
        if response.status_code >= 400:
            raise VndbError(url, response.status_code, response.text)
        return response.json()
    except httpx.HTTPError as exc:
        error = VndbError(url, detail=str(exc))
        logger.error("Error calling VNDB API: %s", error)
        raise error from exc
    except VndbError as exc:
        logger.error("Error calling VNDB API: %s", exc)
        raise
    except ValueError as exc:
        error = VndbError(url, detail=f"invalid JSON response: {exc}")
        logger.error("Error calling VNDB API: %s", error)
        raise error from exc
