"""Bulk row retrieval for resolved columns."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from gridbackend.services.dataverse_client import DataverseClient
from gridbackend.services.metadata_client import MetadataFetchError, MetadataSource
from gridengine.kernel.types import ColumnDefinition

logger = logging.getLogger(__name__)


class DataRetrievalError(Exception):
    """A row query failed."""


@dataclass(frozen=True)
class RetrieveMultipleResult:
    entities: list[dict[str, Any]] = field(default_factory=list)
    next_link: str | None = None


def build_select_query(columns: Iterable[ColumnDefinition]) -> str:
    """OData query projecting the columns' field keys: "?$select=a,_b_value"."""
    keys = [c.field_key for c in columns if c.link_alias is None]
    if not keys:
        return ""
    return "?$select=" + ",".join(keys)


def build_fetch_xml_query(fetch_xml: str) -> str:
    return "?fetchXml=" + quote(fetch_xml, safe="")


class DataClient:
    """retrieveMultipleRecords over the Web API."""

    def __init__(self, metadata: MetadataSource, client: DataverseClient | None = None) -> None:
        self._client = client or DataverseClient()
        self._metadata = metadata

    async def retrieve_multiple(self, entity_name: str, query: str = "") -> RetrieveMultipleResult:
        """
        Fetch rows of an entity.

        Args:
            entity_name: Logical name, e.g. "account"
            query: OData query string starting with "?", or ""

        Raises:
            DataRetrievalError: On any transport or decoding failure, including
                failure to resolve the entity set name
        """
        try:
            entity_set = await self._metadata.fetch_entity_set_name(entity_name)
        except MetadataFetchError as exc:
            raise DataRetrievalError(f"No entity set for {entity_name!r}: {exc}") from exc
        if query and not query.startswith("?"):
            query = "?" + query
        try:
            data = await self._client.get_json(f"{entity_set}{query}")
            entities = data.get("value", [])
        except httpx.HTTPError as exc:
            logger.warning("data: query on %s failed: %s", entity_set, exc)
            raise DataRetrievalError(f"Query on {entity_set!r} failed: {exc}") from exc
        except (ValueError, AttributeError) as exc:
            raise DataRetrievalError(f"Query on {entity_set!r} returned an unexpected body: {exc}") from exc

        logger.debug("data: %d row(s) from %s", len(entities), entity_set)
        return RetrieveMultipleResult(entities=entities, next_link=data.get("@odata.nextLink"))
