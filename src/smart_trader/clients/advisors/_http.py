"""Shared async HTTP plumbing for advisory provider adapters."""

from typing import Any

import httpx

from smart_trader.clients.advisors.exceptions import AdvisoryAPIError
from smart_trader.clients.advisors.models import DEFAULT_RISK_PROFILE, RiskProfile

HTTP_BAD_REQUEST = 400
_DEFAULT_TIMEOUT = 120.0
_DEFAULT_MAX_TOKENS = 8192
_DEFAULT_TEMPERATURE = 0.3
_ERROR_BODY_LIMIT = 300


class HttpProvider:
    """Base class holding an ``httpx.AsyncClient`` and common settings.

    Subclasses set ``NAME`` and implement ``complete``.

    Args:
        api_key: Provider API key.
        model: Model identifier.
        timeout: Request timeout in seconds.
        max_tokens: Maximum completion tokens.
        temperature: Sampling temperature.

    """

    NAME = ""
    RISK_PROFILE: RiskProfile = DEFAULT_RISK_PROFILE
    HAS_WEB_SEARCH = True

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        max_tokens: int = _DEFAULT_MAX_TOKENS,
        temperature: float = _DEFAULT_TEMPERATURE,
    ) -> None:
        """Initialize the provider.

        Args:
            api_key: Provider API key.
            model: Model identifier.
            timeout: Request timeout in seconds.
            max_tokens: Maximum completion tokens.
            temperature: Sampling temperature.

        """
        self._api_key = api_key
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._http_client = httpx.AsyncClient(timeout=timeout)

    @property
    def name(self) -> str:
        """Return the provider identifier."""
        return self.NAME

    @property
    def model(self) -> str:
        """Return the model identifier."""
        return self._model

    @property
    def risk_profile(self) -> RiskProfile:
        """Return the sizing gates for this provider."""
        return self.RISK_PROFILE

    @property
    def has_web_search(self) -> bool:
        """Return whether the provider searches the web."""
        return self.HAS_WEB_SEARCH

    async def _post(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Send a JSON POST request and return the parsed JSON object.

        Args:
            url: Absolute endpoint URL.
            payload: JSON body.
            headers: Extra request headers.
            params: Query parameters.

        Returns:
            Parsed JSON response body.

        Raises:
            AdvisoryAPIError: On transport failure, error status, or non-JSON body.

        """
        try:
            response = await self._http_client.request(
                "POST", url, json=payload, headers=headers, params=params
            )
        except httpx.HTTPError as exc:
            raise AdvisoryAPIError(
                msg=f"{self.NAME} request failed: {exc}", status_code=0
            ) from exc

        if response.status_code >= HTTP_BAD_REQUEST:
            raise AdvisoryAPIError(
                msg=f"{self.NAME} API error: {response.text[:_ERROR_BODY_LIMIT]}",
                status_code=response.status_code,
            )
        try:
            data: Any = response.json()
        except ValueError as exc:
            raise AdvisoryAPIError(
                msg=f"{self.NAME} returned a non-JSON body", status_code=response.status_code
            ) from exc
        if not isinstance(data, dict):
            raise AdvisoryAPIError(
                msg=f"{self.NAME} returned an unexpected payload", status_code=response.status_code
            )
        return data  # pyright: ignore[reportUnknownVariableType]

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._http_client.aclose()

    async def __aenter__(self) -> "HttpProvider":
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager."""
        await self.close()
