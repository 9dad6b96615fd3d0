"""Authenticated API Client — wraps httpx.AsyncClient with bearer injection and error mapping.

Invariants:
    - A fresh token is requested from the TokenProvider before every authenticated call
    - No token → ApiError(UNAUTHENTICATED) raised before any network IO
    - HTTP status >= 400 → ApiError with kind mapped from status (core/errors.py);
      the error body is read best-effort and a malformed body is tolerated
    - Transport failures and timeouts → ApiError(NETWORK_FAILURE)
    - Exactly one network call per request(); no caching, no automatic retry

Design Decisions:
    - Wrapper over raw client: isolates error decoding from cart/checkout logic
    - Retry policy belongs to callers: only reads may re-acquire a token and retry once
"""

import logging
from typing import Any

import httpx

from storefront.core.boundary_protocols import TokenProvider
from storefront.core.errors import (
    ApiError, ApiErrorKind, ErrorContext, api_error_kind_for_status,
)

logger = logging.getLogger(__name__)


class AuthenticatedApiClient:
    """Performs marketplace backend requests and normalizes their failures."""

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            transport=transport,
        )
        self._tokens = token_provider

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: dict[str, Any] | None = None,
        authenticated: bool = True,
        context: ErrorContext | None = None,
    ) -> Any:
        """Send one request and return the decoded JSON body (None if empty)."""
        headers = {"Accept": "application/json"}
        if authenticated:
            token = await self._tokens.get_token()
            if not token:
                raise ApiError(
                    ApiErrorKind.UNAUTHENTICATED,
                    "Authentication required - please login again",
                    context=context,
                )
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self.client.request(
                method, path, json=body, params=params, headers=headers,
            )
        except httpx.TimeoutException as e:
            logger.warning(
                f"Request timed out: {method} {path}",
                extra={"method": method, "path": path},
            )
            raise ApiError(
                ApiErrorKind.NETWORK_FAILURE,
                f"Request timed out: {method} {path}",
                context=context,
            ) from e
        except httpx.TransportError as e:
            logger.warning(
                f"Network failure: {method} {path}: {e}",
                extra={"method": method, "path": path},
            )
            raise ApiError(
                ApiErrorKind.NETWORK_FAILURE,
                f"Network error: {e}",
                context=context,
            ) from e

        if response.status_code >= 400:
            error = _decode_error(response, context)
            logger.warning(
                f"{method} {path} failed: {error.message}",
                extra={
                    "method": method, "path": path,
                    "status_code": response.status_code,
                    "error_code": error.code,
                },
            )
            raise error

        logger.debug(
            f"{method} {path} ok",
            extra={
                "method": method, "path": path,
                "status_code": response.status_code,
            },
        )
        return _decode_body(response, context)

    async def aclose(self) -> None:
        await self.client.aclose()


def _decode_error(
    response: httpx.Response, context: ErrorContext | None,
) -> ApiError:
    """Build ApiError from an error response. Body is optional and may be garbage."""
    status_code = response.status_code
    message = f"HTTP error! status: {status_code}"
    details = None
    try:
        details = response.json()
    except ValueError:
        details = None
    if isinstance(details, dict):
        for key in ("detail", "message"):
            val = details.get(key)
            if isinstance(val, str) and val:
                message = val
                break
    return ApiError(
        api_error_kind_for_status(status_code), message,
        status_code=status_code, details=details, context=context,
    )


def _decode_body(
    response: httpx.Response, context: ErrorContext | None,
) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as e:
        raise ApiError(
            ApiErrorKind.UNKNOWN,
            "Backend returned a malformed JSON body",
            status_code=response.status_code,
            context=context,
        ) from e
