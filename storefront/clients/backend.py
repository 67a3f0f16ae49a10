from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from storefront.services.exceptions import DownstreamServiceError

logger = logging.getLogger(__name__)


class BackendClient:
    """Async HTTP client for the hosted ledger and notification backend.

    In mock mode no connection is opened and any request is a programming
    error; services branch on ``use_mock_data`` before reaching for HTTP.
    """

    def __init__(
        self,
        base_url: str | None,
        *,
        timeout: float = 10.0,
        use_mock_data: bool = True,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        base = str(base_url).rstrip("/") if base_url else None
        self.use_mock_data = use_mock_data or base is None
        self._client: Optional[httpx.AsyncClient] = None
        if not self.use_mock_data:
            headers = {"Accept": "application/json"}
            if token:
                headers["Authorization"] = f"Bearer {token}"
            self._client = httpx.AsyncClient(
                base_url=base, timeout=timeout, headers=headers, transport=transport
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        if self._client is None:
            raise RuntimeError("Real HTTP call requested while mock mode is enabled")
        logger.debug("%s %s", method, path)
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            # 404 and 409 are answers the ledger maps to domain errors.
            log = logger.info if status in (404, 409) else logger.error
            log("Backend %s %s returned %s", method, path, status)
            raise DownstreamServiceError(
                "Backend returned an error response", status_code=status, cause=exc
            ) from exc
        except httpx.RequestError as exc:
            logger.error("Unable to reach backend for %s %s: %s", method, path, exc)
            raise DownstreamServiceError(
                "Unable to reach backend", status_code=None, cause=exc
            ) from exc
        return response.json()

    async def post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", path, json=payload)

    async def get(self, path: str, params: Dict[str, Any] | None = None) -> Dict[str, Any]:
        return await self._request("GET", path, params=params)

    async def simulate_latency(self) -> None:
        """Allow services to await for latency even when mocking responses."""

        await asyncio.sleep(0)
