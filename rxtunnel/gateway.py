"""Connection gateway discovery and the connector HTTP API.

A tunnel only needs a :data:`GatewayResolver`: an async callable returning
the :class:`Gateway` to dial. :class:`ConnectorAPI` provides one backed by the
connector web API (``POST /api/1/gateways/choose``), plus the config
persistence endpoint used by :class:`~rxtunnel.config.ConfigStore`.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx


@dataclass(frozen=True)
class Gateway:
    """A connection gateway endpoint."""

    url: str


GatewayResolver = Callable[[], Awaitable[Gateway]]


class APIError(Exception):
    """Connector API request failed."""

    def __init__(
        self, message: str, status_code: int | None = None, detail: str | None = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


def _raise_for_status(response: httpx.Response, context: str) -> None:
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        try:
            body = e.response.json()
            detail = body.get("detail", str(body)) if isinstance(body, dict) else str(body)
        except ValueError:
            detail = e.response.text
        raise APIError(
            f"HTTP {status} on {context}: {detail}", status_code=status, detail=detail
        ) from e


class ConnectorAPI:
    """Async client for the connector web API.

    Args:
        base_url: Root URL of the web app, e.g. ``"https://app.example.com"``.
        client: Pre-built ``httpx.AsyncClient``. When omitted one is created
            (and closed by :meth:`aclose`).
        headers: Extra headers for every request, e.g. session cookies.
        timeout: Request timeout in seconds for the owned client.

    Example:
        >>> api = ConnectorAPI("https://app.example.com")
        >>> registry = TunnelRegistry(api.choose_gateway, credentials)
    """

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = dict(headers or {})

    async def choose_gateway(self) -> Gateway:
        """Ask the web API which gateway this client should use."""
        response = await self._client.post(
            f"{self.base_url}/api/1/gateways/choose", json={}, headers=self._headers
        )
        _raise_for_status(response, "gateway selection")
        body = response.json()
        url = body.get("url") if isinstance(body, dict) else None
        if not isinstance(url, str) or not url:
            raise APIError(f"Gateway selection returned no url: {body!r}")
        return Gateway(url=url)

    async def patch_config(self, config_id: int | str, content: str) -> dict[str, Any]:
        """Persist config content; returns the server's view of the config."""
        response = await self._client.patch(
            f"{self.base_url}/api/1/configs/{config_id}",
            json={"content": content},
            headers=self._headers,
        )
        _raise_for_status(response, f"config {config_id} update")
        body = response.json()
        return body if isinstance(body, dict) else {}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
