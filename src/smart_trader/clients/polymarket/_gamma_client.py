r"""Async HTTP client for the Polymarket Gamma API.

The Gamma API (``https://gamma-api.polymarket.com``) provides market
metadata, prices, volume, liquidity, and resolution status. This client is
an async context manager with structured error handling.

Note:
    The Gamma API returns ``outcomes`` and ``outcomePrices`` as
    JSON-encoded strings (e.g. ``"[\"0.72\",\"0.28\"]"``). Callers
    must decode these fields before use.

"""

from typing import Any

import httpx

from smart_trader.clients.polymarket._constants import (
    DEFAULT_TIMEOUT,
    GAMMA_BASE_URL,
    HTTP_BAD_REQUEST,
    HTTP_TRANSPORT_ERROR,
)
from smart_trader.clients.polymarket.exceptions import PolymarketAPIError


class GammaClient:
    """Async HTTP client for Polymarket Gamma API market metadata.

    Args:
        base_url: Base URL for the Gamma API.
        timeout: Request timeout in seconds.

    """

    BASE_URL = GAMMA_BASE_URL

    def __init__(
        self,
        base_url: str = BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the Gamma API client.

        Args:
            base_url: Base URL for the Gamma API.
            timeout: Request timeout in seconds.

        """
        self.base_url = base_url.rstrip("/")
        self._http_client = httpx.AsyncClient(timeout=timeout)

    async def get_markets(
        self,
        *,
        active: bool = True,
        closed: bool = False,
        limit: int = 20,
        offset: int = 0,
        order: str = "volume",
        ascending: bool = False,
    ) -> list[dict[str, Any]]:
        """Fetch a paginated list of prediction markets.

        Args:
            active: Include only active (open) markets.
            closed: Include closed markets.
            limit: Maximum number of markets to return.
            offset: Pagination offset.
            order: Field to sort by.
            ascending: Sort direction.

        Returns:
            List of market dictionaries from the Gamma API.

        Raises:
            PolymarketAPIError: When the API returns an error or a non-list body.

        """
        params: dict[str, str | int] = {
            "limit": limit,
            "offset": offset,
            "active": str(active).lower(),
            "closed": str(closed).lower(),
            "order": order,
            "ascending": str(ascending).lower(),
            "include_tag": "true",
        }
        result = await self._get("/markets", params=params)
        if not isinstance(result, list):
            raise PolymarketAPIError(
                msg=f"Expected a list of markets, got {type(result).__name__}",
                status_code=HTTP_TRANSPORT_ERROR,
            )
        return result  # pyright: ignore[reportUnknownVariableType]

    async def get_market_by_id(self, market_id: str) -> dict[str, Any]:
        """Fetch a single market by its Gamma market ID.

        Args:
            market_id: Gamma market identifier.

        Returns:
            Market dictionary from the Gamma API.

        Raises:
            PolymarketAPIError: When the API returns an error response.

        """
        result = await self._get(f"/markets/{market_id}")
        if not isinstance(result, dict):
            raise PolymarketAPIError(
                msg=f"Unexpected market payload for {market_id}",
                status_code=HTTP_TRANSPORT_ERROR,
            )
        return result  # pyright: ignore[reportUnknownVariableType]

    async def _get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send a GET request and return parsed JSON.

        Args:
            path: Request path relative to base_url.
            params: Query parameters.

        Returns:
            Parsed JSON response.

        Raises:
            PolymarketAPIError: When the request fails, the API returns an
                error response, or the body is not JSON.

        """
        url = f"{self.base_url}{path}"
        try:
            response = await self._http_client.request("GET", url, params=params)
        except httpx.HTTPError as exc:
            raise PolymarketAPIError(
                msg=f"HTTP request failed: {exc}",
                status_code=HTTP_TRANSPORT_ERROR,
            ) from exc

        if response.status_code >= HTTP_BAD_REQUEST:
            self._handle_error(response)

        try:
            result: Any = response.json()
        except ValueError as exc:
            raise PolymarketAPIError(
                msg=f"Invalid JSON from {path}",
                status_code=HTTP_TRANSPORT_ERROR,
            ) from exc
        return result

    @staticmethod
    def _handle_error(response: httpx.Response) -> None:
        """Raise a PolymarketAPIError from an error response.

        Args:
            response: HTTP response with a non-2xx status code.

        Raises:
            PolymarketAPIError: Always raised with status code and message.

        """
        try:
            data = response.json()
            msg: str = data.get("message", f"HTTP {response.status_code}")
        except Exception:
            msg = f"HTTP {response.status_code}"
        raise PolymarketAPIError(msg=msg, status_code=response.status_code)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._http_client.aclose()

    async def __aenter__(self) -> "GammaClient":
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager."""
        await self.close()
