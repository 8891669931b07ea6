"""HTTP transport for the Dataverse Web API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from gridbackend import config

logger = logging.getLogger(__name__)


class DataverseClient:
    """Thin async JSON client for the Web API.

    Opens one httpx.AsyncClient per request, so concurrent calls from
    asyncio.gather never share connection state.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        api_version: str | None = None,
        timeout: float | None = None,
    ) -> None:
        base_url = base_url if base_url is not None else config.settings.DATAVERSE_URL
        if not base_url:
            raise RuntimeError("DATAVERSE_URL environment variable is required")
        version = api_version or config.settings.DATAVERSE_API_VERSION
        self._api_url = f"{base_url.rstrip('/')}/api/data/{version}"
        self._token = token if token is not None else config.settings.DATAVERSE_TOKEN
        self._timeout = timeout if timeout is not None else config.settings.HTTP_TIMEOUT_SECONDS

    @property
    def api_url(self) -> str:
        return self._api_url

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "OData-MaxVersion": "4.0",
            "OData-Version": "4.0",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        """
        GET a Web API resource and decode its JSON body.

        Args:
            path: Resource path relative to the API root, e.g. "savedqueries(<id>)"
            params: Optional query-string parameters

        Raises:
            httpx.HTTPError: On transport failure or a non-2xx response
            ValueError: If the body is not JSON
        """
        url = f"{self._api_url}/{path.lstrip('/')}"
        logger.debug("dataverse: GET %s", url)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.get(url, params=params, headers=self._headers())
            response.raise_for_status()
            return response.json()
