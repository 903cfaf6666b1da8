"""
Base HTTP client for the internal GovConnect services.

Shared by the case, channel and knowledge clients: one reusable
``httpx.AsyncClient``, the internal API key header, and conversion of
transport and HTTP failures into ``DownstreamError``.
"""

import logging
from typing import Any, Optional

import httpx

from src.errors import DownstreamError, ErrorKind

logger = logging.getLogger(__name__)

INTERNAL_KEY_HEADER = "x-internal-api-key"

_STATUS_KINDS = {
    404: ErrorKind.DOWNSTREAM_NOT_FOUND,
    403: ErrorKind.DOWNSTREAM_NOT_OWNER,
    409: ErrorKind.DOWNSTREAM_LOCKED,
    423: ErrorKind.DOWNSTREAM_LOCKED,
}
_BODY_KINDS = {
    "NOT_FOUND": ErrorKind.DOWNSTREAM_NOT_FOUND,
    "NOT_OWNER": ErrorKind.DOWNSTREAM_NOT_OWNER,
    "LOCKED": ErrorKind.DOWNSTREAM_LOCKED,
    "ALREADY_COMPLETED": ErrorKind.DOWNSTREAM_LOCKED,
}


def error_kind_for(status_code: int, body: Any) -> ErrorKind:
    """Map an error response to a downstream kind; the body's ``error`` wins.

    Examples:
        >>> error_kind_for(400, {"error": "NOT_OWNER"})
        <ErrorKind.DOWNSTREAM_NOT_OWNER: 'NOT_OWNER'>
        >>> error_kind_for(423, None)
        <ErrorKind.DOWNSTREAM_LOCKED: 'LOCKED'>
    """
    if isinstance(body, dict):
        code = str(body.get("error") or body.get("code") or "").upper()
        if code in _BODY_KINDS:
            return _BODY_KINDS[code]
    return _STATUS_KINDS.get(status_code, ErrorKind.DOWNSTREAM_UNAVAILABLE)


class BaseServiceClient:
    """Thin async JSON client with common error handling."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        headers = {INTERNAL_KEY_HEADER: api_key} if api_key else {}
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = headers

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Send one request and return the parsed JSON body.

        Raises:
            DownstreamError: NOT_FOUND / NOT_OWNER / LOCKED for domain errors,
                UNAVAILABLE for transport failures and other bad responses.
        """
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.request(
                method, url, json=json, params=params, headers=self._headers
            )
        except httpx.RequestError as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise DownstreamError(ErrorKind.DOWNSTREAM_UNAVAILABLE, f"request failed: {e}") from e

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = None
            kind = error_kind_for(response.status_code, body)
            logger.info("%s %s returned %d (%s)", method, url, response.status_code, kind.value)
            raise DownstreamError(kind, f"API returned error {response.status_code}: {response.text[:200]}")

        try:
            return response.json()
        except ValueError as e:
            raise DownstreamError(ErrorKind.DOWNSTREAM_UNAVAILABLE, "invalid JSON response") from e

    @staticmethod
    def _data(body: Any) -> Any:
        """Unwrap the ``{"data": ...}`` envelope used by the internal services."""
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    async def aclose(self) -> None:
        await self._client.aclose()
