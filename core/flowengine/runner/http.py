"""Shared httpx plumbing for the agent-serving REST API."""

import logging
from typing import Any

import httpx

from flowengine.config import get_api_base_url
from flowengine.graph.errors import ServiceError

logger = logging.getLogger(__name__)


class ApiClient:
    """
    Thin async client for the agent-serving API.

    Owns one ``httpx.AsyncClient`` created lazily on first use. Pass
    ``client`` to share a client (or a mock transport in tests).
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = 60.0,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or get_api_base_url()).rstrip("/")
        self.timeout = timeout
        self.headers = headers or {}
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                headers=self.headers,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request, mapping transport failures to ServiceError."""
        url = f"{self.base_url}{path}"
        client = await self._get_client()
        try:
            return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"API timeout: {method} {url}: {e}")
            raise ServiceError(f"Request to {url} timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"API connection error: {method} {url}: {e}")
            raise ServiceError(f"Failed to reach {url}: {e}") from e

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        """Return the response body, raising ServiceError on HTTP errors."""
        if response.status_code >= 400:
            try:
                body = response.json()
                detail = body.get("error") or body.get("message") or response.text
                if not isinstance(detail, str):
                    detail = str(detail)
            except Exception:
                body = None
                detail = response.text
            raise ServiceError(
                f"API error (HTTP {response.status_code}): {detail}",
                status_code=response.status_code,
                details=body if isinstance(body, dict) else None,
            )
        try:
            return response.json()
        except ValueError:
            return response.text
