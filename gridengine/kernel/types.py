"""
Grid Kernel — Shared Types

Data classes used across the parser, filter injector, layout merger and
column builder. These are the contracts that bind the kernel together.

Everything the kernel hands out is frozen: transformations build new values
instead of mutating the ones they were given.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_COLUMN_WIDTH = 100

LOOKUP_ODATA_TYPE = "#Microsoft.Dynamics.CRM.LookupAttributeMetadata"

# Warning codes
UNRESOLVED_ATTRIBUTE = "unresolved_attribute"


# ---------------------------------------------------------------------------
# Query document
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AttributeRef:
    """One <attribute> of the query, optionally belonging to a linked entity."""

    name: str
    link_alias: str | None = None

    @property
    def key(self) -> str:
        """Qualified key: "alias.name" for linked attributes, "name" otherwise."""
        if self.link_alias:
            return f"{self.link_alias}.{self.name}"
        return self.name

    @property
    def is_linked(self) -> bool:
        return self.link_alias is not None


@dataclass(frozen=True)
class LinkRef:
    """A first-level <link-entity> join."""

    alias: str | None
    target_entity_name: str
    from_field: str | None = None
    to_field: str | None = None
    attribute_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class SortOrder:
    attribute_name: str
    descending: bool = False


@dataclass(frozen=True)
class QueryDocument:
    """
    Parsed query document.

    attributes are in document order: root attributes and linked attributes
    interleaved exactly as their elements appear under <entity>.
    """

    entity_name: str
    attributes: tuple[AttributeRef, ...] = ()
    links: tuple[LinkRef, ...] = ()
    sort: SortOrder | None = None

    @property
    def entity_names(self) -> list[str]:
        """Root entity first, then every linked entity, without duplicates."""
        names = [self.entity_name]
        for link in self.links:
            if link.target_entity_name and link.target_entity_name not in names:
                names.append(link.target_entity_name)
        return names

    def find_link(self, alias: str | None) -> LinkRef | None:
        for link in self.links:
            if link.alias == alias:
                return link
        return None


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CellSpec:
    name: str
    width: int = DEFAULT_COLUMN_WIDTH
    hidden: bool = False


@dataclass(frozen=True)
class LayoutDescriptor:
    """
    Decoded layout JSON.

    cells is None when the layout declares no rows. A layout with no rows is
    still a layout: columns it does not mention are hidden.
    """

    object_id: int | None = None
    cells: tuple[CellSpec, ...] | None = None

    @property
    def order(self) -> list[str]:
        return [cell.name for cell in self.cells or ()]

    def find_cell(self, name: str) -> CellSpec | None:
        for cell in self.cells or ():
            if cell.name == name:
                return cell
        return None


# ---------------------------------------------------------------------------
# Metadata and columns
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AttributeMetadata:
    """Schema facts for one (entity, attribute) pair."""

    entity_name: str
    name: str
    display_label: str
    is_primary_key: bool = False
    is_primary_name: bool = False
    is_lookup: bool = False

    @classmethod
    def from_dict(cls, entity_name: str, d: dict[str, Any]) -> AttributeMetadata:
        """Build from an attribute descriptor of the metadata API."""
        name = d["LogicalName"]
        labels = (d.get("DisplayName") or {}).get("LocalizedLabels") or []
        label = labels[0].get("Label") if labels else None
        return cls(
            entity_name=entity_name,
            name=name,
            display_label=label or name,
            is_primary_key=bool(d.get("IsPrimaryId", False)),
            is_primary_name=bool(d.get("IsPrimaryName", False)),
            is_lookup=d.get("@odata.type") == LOOKUP_ODATA_TYPE,
        )


@dataclass(frozen=True)
class ColumnDefinition:
    short_name: str
    field_key: str
    display_label: str
    width: int = DEFAULT_COLUMN_WIDTH
    is_primary_key: bool = False
    is_primary_name: bool = False
    is_lookup: bool = False
    is_hidden: bool = False
    is_sorted: bool = False
    is_sorted_descending: bool = False
    link_alias: str | None = None

    @property
    def has_navigation_link(self) -> bool:
        return self.is_primary_name or self.is_lookup

    def to_dict(self) -> dict[str, Any]:
        return {
            "short_name": self.short_name,
            "field_key": self.field_key,
            "display_label": self.display_label,
            "width": self.width,
            "is_primary_key": self.is_primary_key,
            "is_primary_name": self.is_primary_name,
            "is_lookup": self.is_lookup,
            "has_navigation_link": self.has_navigation_link,
            "is_hidden": self.is_hidden,
            "is_sorted": self.is_sorted,
            "is_sorted_descending": self.is_sorted_descending,
            "link_alias": self.link_alias,
        }


@dataclass(frozen=True)
class UnresolvedAttributeWarning:
    """A column was built without metadata. Non-fatal."""

    code: str
    message: str
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class ColumnModel:
    """Result of building columns for one document."""

    columns: tuple[ColumnDefinition, ...]
    display_name: str
    display_collection_name: str
    warnings: tuple[UnresolvedAttributeWarning, ...] = ()


# ---------------------------------------------------------------------------
# Views and resolved config
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ViewItem:
    display_name: str
    identifier: str
    is_active: bool = False


@dataclass(frozen=True)
class FeatureToggles:
    allow_search_box: bool = False
    allow_edit_button: bool = False
    allow_add_button: bool = False
    allow_open_associated_records_button: bool = False
    allow_refresh_grid_view_button: bool = False
    allow_open_in_new_window_button: bool = False


@dataclass(frozen=True)
class ResolvedConfig:
    """
    Snapshot handed to consumers after a pipeline run.
    Never mutated; the next run produces a new one.
    """

    entity_name: str = ""
    object_id: int | None = None
    display_name: str = ""
    display_collection_name: str = ""
    title: str = ""
    columns: tuple[ColumnDefinition, ...] = ()
    features: FeatureToggles = field(default_factory=FeatureToggles)
    view_items: tuple[ViewItem, ...] | None = None
    fetch_xml: str = ""
    warnings: tuple[UnresolvedAttributeWarning, ...] = ()
    resolved_at: str | None = None

    @property
    def active_view(self) -> ViewItem | None:
        for item in self.view_items or ():
            if item.is_active:
                return item
        return None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def activate_view(items: tuple[ViewItem, ...] | list[ViewItem], identifier: str) -> tuple[ViewItem, ...]:
    """Return a copy of items where only the item with this identifier is active."""
    return tuple(
        ViewItem(
            display_name=item.display_name,
            identifier=item.identifier,
            is_active=item.identifier == identifier,
        )
        for item in items
    )


def now_iso() -> str:
    """Current UTC time as ISO 8601 string."""
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
