"""Saved view (savedquery) retrieval."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from gridbackend.services.dataverse_client import DataverseClient

logger = logging.getLogger(__name__)

SAVED_QUERY_SELECT = "name,fetchxml,layoutjson,returnedtypecode"


class SavedViewRetrievalError(Exception):
    """A saved view could not be retrieved."""

    def __init__(self, view_id: str, reason: str) -> None:
        super().__init__(f"Saved view {view_id!r} could not be retrieved: {reason}")
        self.view_id = view_id


@dataclass(frozen=True)
class SavedQuery:
    """A stored (FetchXML, layout JSON) pair."""

    view_id: str
    name: str
    fetch_xml: str
    layout_json: str | None = None
    returned_type_code: str | None = None


class SavedQuerySource:
    """
    Abstract saved-view interface.
    Implement with the Web API for production, or in-memory for tests.
    """

    async def get(self, view_id: str) -> SavedQuery:
        """Fetch a saved view. Raises SavedViewRetrievalError on any failure."""
        raise NotImplementedError


class MemorySavedQuerySource(SavedQuerySource):
    """In-memory saved views for testing."""

    def __init__(self, views: dict[str, SavedQuery] | None = None) -> None:
        self.views: dict[str, SavedQuery] = dict(views or {})
        self.calls: list[str] = []

    async def get(self, view_id: str) -> SavedQuery:
        self.calls.append(view_id)
        view = self.views.get(view_id)
        if view is None:
            raise SavedViewRetrievalError(view_id, "not found")
        return view


class DataverseSavedQueryClient(SavedQuerySource):
    """Reads savedquery records from the Web API."""

    def __init__(self, client: DataverseClient | None = None) -> None:
        self._client = client or DataverseClient()

    async def get(self, view_id: str) -> SavedQuery:
        """
        Retrieve one savedquery record.

        Raises:
            SavedViewRetrievalError: On transport failure, a non-2xx response,
                or a record without fetchxml
        """
        view_id = view_id.strip("{}")
        try:
            record = await self._client.get_json(f"savedqueries({view_id})", params={"$select": SAVED_QUERY_SELECT})
        except httpx.HTTPError as exc:
            logger.warning("saved_query: retrieval of %s failed: %s", view_id, exc)
            raise SavedViewRetrievalError(view_id, str(exc)) from exc
        except ValueError as exc:
            raise SavedViewRetrievalError(view_id, f"unexpected response: {exc}") from exc

        if not isinstance(record, dict) or not record.get("fetchxml"):
            raise SavedViewRetrievalError(view_id, "record has no fetchxml")

        returned_type_code = record.get("returnedtypecode")
        return SavedQuery(
            view_id=view_id,
            name=record.get("name") or "",
            fetch_xml=record["fetchxml"],
            layout_json=record.get("layoutjson") or None,
            returned_type_code=str(returned_type_code) if returned_type_code is not None else None,
        )
