"""Gateway Script Loader — fetches the third-party checkout script over HTTP.

Invariants:
    - load() never raises: any transport error or non-2xx status yields False
    - An empty script body counts as a failed load

Design Decisions:
    - Separate short-lived client per load: loading happens once per process,
      a pooled client would only hold an idle connection
"""

import logging

import httpx

logger = logging.getLogger(__name__)


class HttpScriptLoader:
    """ScriptLoader implementation backed by httpx."""

    def __init__(
        self,
        script_url: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.script_url = script_url
        self._timeout = timeout_seconds
        self._transport = transport

    async def load(self) -> bool:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport,
            ) as client:
                response = await client.get(self.script_url)
        except httpx.HTTPError as e:
            logger.error(f"Gateway script load failed: {e}")
            return False
        if response.is_success and response.content:
            logger.info(f"Gateway script loaded from {self.script_url}")
            return True
        logger.error(
            f"Gateway script load failed: HTTP {response.status_code}",
            extra={"status_code": response.status_code},
        )
        return False
