"""Tests for the Web API transport and its settings."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from gridbackend import config
from gridbackend.services.dataverse_client import DataverseClient


def test_missing_url_raises():
    with patch.object(config.settings, "DATAVERSE_URL", ""):
        with pytest.raises(RuntimeError, match="DATAVERSE_URL"):
            DataverseClient()


def test_settings_used_by_default():
    with (
        patch.object(config.settings, "DATAVERSE_URL", "https://env.crm.dynamics.com/"),
        patch.object(config.settings, "DATAVERSE_API_VERSION", "v9.2"),
    ):
        client = DataverseClient()
    assert client.api_url == "https://env.crm.dynamics.com/api/data/v9.2"


def test_explicit_arguments_win():
    client = DataverseClient(base_url="https://a.crm.dynamics.com", api_version="v9.1")
    assert client.api_url == "https://a.crm.dynamics.com/api/data/v9.1"


@pytest.mark.asyncio
async def test_get_json_uses_timeout_and_headers():
    client = DataverseClient(base_url="https://a.crm.dynamics.com", token="abc", timeout=5.0)

    mock_response = MagicMock()
    mock_response.json.return_value = {"value": []}
    mock_response.raise_for_status = MagicMock()

    with patch("httpx.AsyncClient") as mock_client_cls:
        mock_client = AsyncMock()
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=None)
        mock_client.get = AsyncMock(return_value=mock_response)
        mock_client_cls.return_value = mock_client

        result = await client.get_json("/accounts", params={"$top": "1"})

    assert result == {"value": []}
    mock_client_cls.assert_called_once_with(timeout=5.0)
    call = mock_client.get.call_args
    assert call.args[0] == "https://a.crm.dynamics.com/api/data/v9.0/accounts"
    assert call.kwargs["params"] == {"$top": "1"}
    assert call.kwargs["headers"]["Authorization"] == "Bearer abc"
    assert call.kwargs["headers"]["Accept"] == "application/json"


@pytest.mark.asyncio
async def test_get_json_propagates_http_errors():
    client = DataverseClient(base_url="https://a.crm.dynamics.com")

    mock_response = MagicMock()
    mock_response.raise_for_status.side_effect = httpx.HTTPStatusError(
        "401 Unauthorized", request=MagicMock(), response=MagicMock()
    )

    with patch("httpx.AsyncClient") as mock_client_cls:
        mock_client = AsyncMock()
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=None)
        mock_client.get = AsyncMock(return_value=mock_response)
        mock_client_cls.return_value = mock_client

        with pytest.raises(httpx.HTTPStatusError):
            await client.get_json("accounts")
