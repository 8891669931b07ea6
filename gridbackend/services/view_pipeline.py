"""
View pipeline — turns a query document (or a saved view) into a ResolvedConfig.

Stages, in order:
  1. inject host filter conditions into the FetchXML
  2. parse FetchXML and layout JSON, apply the layout's column order
  3. resolve attribute metadata (one parallel lookup per entity)
  4. build columns and publish the snapshot to subscribers

Each run takes a generation number. A run whose remote calls return after a
newer run has started is discarded: it changes no state and notifies nobody.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from gridbackend.models.grid_options import GridOptions, ViewRef
from gridbackend.services.data_client import (
    DataClient,
    RetrieveMultipleResult,
    build_fetch_xml_query,
    build_select_query,
)
from gridbackend.services.metadata_client import MetadataSource
from gridbackend.services.saved_query_client import SavedQuerySource
from gridengine.kernel.columns import build_columns, metadata_request
from gridengine.kernel.fetchxml import MalformedDocumentError, parse_fetch_xml
from gridengine.kernel.filters import inject_conditions
from gridengine.kernel.layout import merge_layout_order, parse_layout
from gridengine.kernel.types import ResolvedConfig, ViewItem, activate_view, now_iso

if TYPE_CHECKING:
    from xml.etree.ElementTree import Element

logger = logging.getLogger(__name__)

ReadyCallback = Callable[[ResolvedConfig], Any]
LayoutInput = str | dict[str, Any] | None


class ViewState(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"


class ViewPipeline:
    """
    Owns the active view, the loaded document and the latest snapshot.
    Consumers only ever see frozen ResolvedConfig values.
    """

    def __init__(
        self,
        metadata: MetadataSource,
        saved_queries: SavedQuerySource | None = None,
        data: DataClient | None = None,
        clock: Callable[[], str] = now_iso,
    ) -> None:
        self._metadata = metadata
        self._saved_queries = saved_queries
        self._data = data
        self._clock = clock

        self.state = ViewState.IDLE
        self._options = GridOptions()
        self._layout_override: LayoutInput = None
        self._view_items: tuple[ViewItem, ...] | None = None
        self._current_view_id: str | None = None

        self._generation = 0
        self._latest: ResolvedConfig | None = None
        self._subscribers: list[ReadyCallback] = []

    @property
    def current_view_id(self) -> str | None:
        return self._current_view_id

    # -- entry points --

    async def initialize(
        self,
        source: str | Element | ViewItem | None = None,
        layout: LayoutInput = None,
        options: GridOptions | None = None,
    ) -> ResolvedConfig | None:
        """
        Load a grid from a document or a saved view.

        source is FetchXML text, an already-parsed document, or a ViewItem.
        When it is None the active view from options is retrieved. A layout
        passed here overrides the layout stored with any saved view.

        Returns the snapshot, or None if a newer run superseded this one.

        Raises:
            MalformedDocumentError: No document and no view to load, or the
                document has no named entity
            MetadataFetchError: A metadata lookup failed
            SavedViewRetrievalError: The saved view could not be retrieved
        """
        self._options = options or GridOptions()
        self._view_items = self._options.view_items()
        self._layout_override = layout
        self._current_view_id = self._options.active_view_id()

        if isinstance(source, ViewItem):
            self._mark_active(source.identifier)
            return await self._load_view(source.identifier)

        if source is None:
            if self._current_view_id:
                return await self._load_view(self._current_view_id)
            raise MalformedDocumentError("fetchXml is required")

        generation = self._next_generation()
        return await self._run(generation, source, layout)

    async def select_view(self, item: ViewItem | ViewRef | str) -> ResolvedConfig | None:
        """
        Switch to another saved view.

        Selecting the view that is already active does nothing: no retrieval,
        no notification, returns None. If the switch fails, the previously
        active view is restored so the same view can be selected again.
        """
        view_id = _view_id(item)
        if view_id == self._current_view_id:
            return None

        previous_id, previous_items = self._current_view_id, self._view_items
        generation = self._generation
        self._mark_active(view_id)
        logger.info("pipeline: switching to view %s", view_id)
        try:
            return await self._load_view(view_id)
        except Exception:
            # only while no newer run has started
            if self._generation <= generation + 1:
                self._current_view_id, self._view_items = previous_id, previous_items
            raise

    def on_ready(self, callback: ReadyCallback, *, replay: bool = False) -> Callable[[], None]:
        """
        Subscribe to every successful run, including the first.

        With replay=True the callback also gets the latest snapshot right away
        if one exists. Returns a function that unsubscribes.
        """
        self._subscribers.append(callback)
        if replay and self._latest is not None:
            self._invoke(callback, self._latest)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def latest(self) -> ResolvedConfig | None:
        return self._latest

    def get_resolved_config(self) -> ResolvedConfig:
        """Latest snapshot, or an empty one carrying the host options."""
        if self._latest is not None:
            return self._latest
        return ResolvedConfig(
            title=self._options.title or "",
            features=self._options.features(),
            view_items=self._view_items,
        )

    # -- data --

    async def fetch_rows(self, query: str | None = None) -> RetrieveMultipleResult:
        """Rows for the resolved entity. Defaults to selecting the column field keys."""
        config, data = self._require_data()
        if query is None:
            query = build_select_query(config.columns)
        return await data.retrieve_multiple(config.entity_name, query)

    async def fetch_rows_by_fetch_xml(self) -> RetrieveMultipleResult:
        """Rows for the resolved entity using the filtered FetchXML as is."""
        config, data = self._require_data()
        return await data.retrieve_multiple(config.entity_name, build_fetch_xml_query(config.fetch_xml))

    # -- internals --

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _is_stale(self, generation: int) -> bool:
        if generation != self._generation:
            logger.info("pipeline: discarding run %d, run %d is newer", generation, self._generation)
            return True
        return False

    def _mark_active(self, view_id: str) -> None:
        self._current_view_id = view_id
        if self._view_items is not None:
            self._view_items = activate_view(self._view_items, view_id)

    async def _load_view(self, view_id: str) -> ResolvedConfig | None:
        if self._saved_queries is None:
            raise RuntimeError("pipeline has no saved view source")

        generation = self._next_generation()
        self.state = ViewState.LOADING
        saved = await self._saved_queries.get(view_id)
        if self._is_stale(generation):
            return None

        layout = self._layout_override or saved.layout_json
        return await self._run(generation, saved.fetch_xml, layout)

    async def _run(self, generation: int, fetch_xml: str | Element, layout: LayoutInput) -> ResolvedConfig | None:
        options = self._options
        filtered = inject_conditions(fetch_xml, options.custom_filter_conditions)
        document = parse_fetch_xml(filtered)
        descriptor = parse_layout(layout)
        attributes = merge_layout_order(document.attributes, descriptor)

        entity_names, attribute_names = metadata_request(document)
        metadata = await self._metadata.resolve(entity_names, attribute_names)
        if self._is_stale(generation):
            return None

        model = build_columns(document, attributes, descriptor, metadata, title=options.title)
        view_items = self._view_items
        if view_items is not None:
            title = options.title or ""
        else:
            title = model.display_collection_name

        config = ResolvedConfig(
            entity_name=document.entity_name,
            object_id=descriptor.object_id if descriptor else None,
            display_name=model.display_name,
            display_collection_name=model.display_collection_name,
            title=title,
            columns=model.columns,
            features=options.features(),
            view_items=view_items,
            fetch_xml=filtered,
            warnings=model.warnings,
            resolved_at=self._clock(),
        )

        self._latest = config
        self.state = ViewState.READY
        logger.info(
            "pipeline: resolved %s with %d column(s), %d unresolved",
            config.entity_name,
            len(config.columns),
            len(config.warnings),
        )
        self._notify(config)
        return config

    def _notify(self, config: ResolvedConfig) -> None:
        for callback in list(self._subscribers):
            self._invoke(callback, config)

    def _invoke(self, callback: ReadyCallback, config: ResolvedConfig) -> None:
        try:
            callback(config)
        except Exception:
            logger.exception("pipeline: ready callback %r failed", callback)

    def _require_data(self) -> tuple[ResolvedConfig, DataClient]:
        if self._data is None:
            raise RuntimeError("pipeline has no data client")
        if self._latest is None:
            raise RuntimeError("pipeline has not resolved a view yet")
        return self._latest, self._data


def _view_id(item: ViewItem | ViewRef | str) -> str:
    if isinstance(item, ViewItem):
        return item.identifier
    if isinstance(item, ViewRef):
        return item.id
    return item
