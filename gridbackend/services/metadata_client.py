"""
Attribute metadata resolution.

One Web API lookup per entity, constrained to the requested attribute names,
all issued concurrently and joined before anything is returned:

  GET EntityDefinitions(LogicalName='account')/Attributes
      ?$filter=Microsoft.Dynamics.CRM.In(PropertyName='logicalname',PropertyValues=['name','revenue'])

Any failed lookup fails the whole resolution. Attributes the server does not
return are simply absent; the column builder falls back to defaults for them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence

import httpx

from gridbackend.services.dataverse_client import DataverseClient
from gridengine.kernel.types import AttributeMetadata

logger = logging.getLogger(__name__)


class MetadataFetchError(Exception):
    """A metadata lookup failed. No partial metadata is returned."""

    def __init__(self, entity_name: str, reason: str) -> None:
        super().__init__(f"Metadata lookup for {entity_name!r} failed: {reason}")
        self.entity_name = entity_name


# ---------------------------------------------------------------------------
# Source protocol
# ---------------------------------------------------------------------------


class MetadataSource:
    """
    Abstract metadata interface.
    Implement with the Web API for production, or in-memory for tests.
    """

    async def fetch_attributes(self, entity_name: str, attribute_names: Sequence[str]) -> list[AttributeMetadata]:
        """Fetch metadata for the named attributes of one entity."""
        raise NotImplementedError

    async def fetch_entity_set_name(self, entity_name: str) -> str:
        """Fetch the collection name used in data URLs, e.g. "accounts"."""
        raise NotImplementedError

    async def resolve(self, entity_names: Iterable[str], attribute_names: Iterable[str]) -> list[AttributeMetadata]:
        """
        Look up every entity in parallel and flatten the results.

        Results come back in the order the entities were requested,
        regardless of which lookup finished first.
        """
        entities = list(dict.fromkeys(entity_names))
        names = list(dict.fromkeys(attribute_names))
        if not entities or not names:
            return []

        results = await asyncio.gather(*(self.fetch_attributes(e, names) for e in entities))

        merged: list[AttributeMetadata] = []
        for items in results:
            merged.extend(items)
        logger.info("metadata: resolved %d attribute(s) across %d entities", len(merged), len(entities))
        return merged


class MemoryMetadataSource(MetadataSource):
    """In-memory metadata for testing."""

    def __init__(
        self,
        attributes: Iterable[AttributeMetadata] = (),
        entity_sets: dict[str, str] | None = None,
        failing: Iterable[str] = (),
    ) -> None:
        self.attributes = list(attributes)
        self.entity_sets = dict(entity_sets or {})
        self.failing = set(failing)
        self.calls: list[tuple[str, tuple[str, ...]]] = []

    async def fetch_attributes(self, entity_name: str, attribute_names: Sequence[str]) -> list[AttributeMetadata]:
        self.calls.append((entity_name, tuple(attribute_names)))
        if entity_name in self.failing:
            raise MetadataFetchError(entity_name, "simulated failure")
        wanted = set(attribute_names)
        return [a for a in self.attributes if a.entity_name == entity_name and a.name in wanted]

    async def fetch_entity_set_name(self, entity_name: str) -> str:
        if entity_name in self.failing:
            raise MetadataFetchError(entity_name, "simulated failure")
        return self.entity_sets.get(entity_name, f"{entity_name}s")


# ---------------------------------------------------------------------------
# Web API implementation
# ---------------------------------------------------------------------------


def attribute_filter(attribute_names: Sequence[str]) -> str:
    values = ",".join(f"'{name}'" for name in attribute_names)
    return f"Microsoft.Dynamics.CRM.In(PropertyName='logicalname',PropertyValues=[{values}])"


class DataverseMetadataClient(MetadataSource):
    """Metadata lookups against EntityDefinitions."""

    def __init__(self, client: DataverseClient | None = None) -> None:
        self._client = client or DataverseClient()
        self._entity_sets: dict[str, str] = {}

    async def fetch_attributes(self, entity_name: str, attribute_names: Sequence[str]) -> list[AttributeMetadata]:
        """
        Fetch metadata for the named attributes of one entity.

        Raises:
            MetadataFetchError: If the request fails or the body is not a
                list of attribute descriptors
        """
        path = f"EntityDefinitions(LogicalName='{entity_name}')/Attributes"
        try:
            data = await self._client.get_json(path, params={"$filter": attribute_filter(attribute_names)})
            return [AttributeMetadata.from_dict(entity_name, item) for item in data["value"]]
        except httpx.HTTPError as exc:
            logger.warning("metadata: lookup for %s failed: %s", entity_name, exc)
            raise MetadataFetchError(entity_name, str(exc)) from exc
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("metadata: unexpected response for %s: %s", entity_name, exc)
            raise MetadataFetchError(entity_name, f"unexpected response: {exc}") from exc

    async def fetch_entity_set_name(self, entity_name: str) -> str:
        """Resolve and cache the entity set name for data URLs."""
        if entity_name in self._entity_sets:
            return self._entity_sets[entity_name]
        path = f"EntityDefinitions(LogicalName='{entity_name}')"
        try:
            data = await self._client.get_json(path, params={"$select": "EntitySetName"})
            entity_set = data["EntitySetName"]
        except httpx.HTTPError as exc:
            raise MetadataFetchError(entity_name, str(exc)) from exc
        except (ValueError, KeyError, TypeError) as exc:
            raise MetadataFetchError(entity_name, f"unexpected response: {exc}") from exc
        self._entity_sets[entity_name] = entity_set
        return entity_set
