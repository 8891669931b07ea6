"""
Grid Kernel — Column Model Builder

Combines a parsed query document, its layout and resolved attribute metadata
into display-ready column definitions. Pure: the same inputs always build the
same columns.

Rules, per attribute in post-layout order:
  - metadata is looked up by (entity, short name); linked attributes resolve
    against their link's target entity
  - a root lookup attribute reads its value from "_<name>_value"
  - a linked attribute's label is qualified with the label of the join's
    "to" field, "Full Name ( Primary Contact )", or with the link's first
    attribute name when that field has no metadata
  - width/hidden come from the layout cell; without a cell the width is 100
    and the column is hidden only if a layout exists
  - the column whose short name matches the <order> attribute is sorted
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from gridengine.kernel.types import (
    DEFAULT_COLUMN_WIDTH,
    UNRESOLVED_ATTRIBUTE,
    AttributeMetadata,
    AttributeRef,
    ColumnDefinition,
    ColumnModel,
    LayoutDescriptor,
    LinkRef,
    QueryDocument,
    UnresolvedAttributeWarning,
)

logger = logging.getLogger(__name__)

MetadataIndex = dict[tuple[str, str], AttributeMetadata]


def lookup_field_key(name: str) -> str:
    """Field key under which the platform exposes a lookup's value."""
    return f"_{name}_value"


def metadata_request(document: QueryDocument) -> tuple[list[str], list[str]]:
    """
    Entity names and short attribute names to resolve for this document.

    Entities: root first, then linked entities in document order.
    Attributes: every column's short name plus each join's "to" field, so
    the linked-column qualifier can be labelled. Both lists are distinct and
    keep first-seen order.
    """
    names: list[str] = []
    for attr in document.attributes:
        if attr.name not in names:
            names.append(attr.name)
    for link in document.links:
        if link.to_field and link.to_field not in names:
            names.append(link.to_field)
    return document.entity_names, names


def index_metadata(metadata: Iterable[AttributeMetadata]) -> MetadataIndex:
    index: MetadataIndex = {}
    for item in metadata:
        index.setdefault((item.entity_name, item.name), item)
    return index


def build_columns(
    document: QueryDocument,
    attributes: Iterable[AttributeRef],
    layout: LayoutDescriptor | None,
    metadata: Iterable[AttributeMetadata],
    *,
    title: str | None = None,
) -> ColumnModel:
    """
    Build the column model.

    attributes is the document's attribute list after layout merging; it
    fixes the column order. title, when given, wins over the primary-key
    column's label for the aggregate display name.
    """
    index = index_metadata(metadata)
    columns: list[ColumnDefinition] = []
    warnings: list[UnresolvedAttributeWarning] = []

    for attr in attributes:
        column, warning = _build_column(document, attr, layout, index)
        columns.append(column)
        if warning is not None:
            warnings.append(warning)

    primary = next((c for c in columns if c.is_primary_key), None)
    if title is not None:
        display_name = title
    elif primary is not None:
        display_name = primary.display_label or primary.short_name
    else:
        display_name = ""

    return ColumnModel(
        columns=tuple(columns),
        display_name=display_name,
        display_collection_name=display_name,
        warnings=tuple(warnings),
    )


def _build_column(
    document: QueryDocument,
    attr: AttributeRef,
    layout: LayoutDescriptor | None,
    index: MetadataIndex,
) -> tuple[ColumnDefinition, UnresolvedAttributeWarning | None]:
    link = document.find_link(attr.link_alias) if attr.is_linked else None
    entity_name = link.target_entity_name if link is not None else document.entity_name
    meta = index.get((entity_name, attr.name))

    warning = None
    if meta is None:
        warning = UnresolvedAttributeWarning(
            code=UNRESOLVED_ATTRIBUTE,
            message=f"No metadata for {entity_name}.{attr.name}",
            details={"entity_name": entity_name, "attribute": attr.name, "key": attr.key},
        )
        logger.warning("columns: no metadata for %s.%s, using defaults", entity_name, attr.name)

    is_lookup = meta.is_lookup if meta else False
    field_key = attr.key
    if is_lookup and not attr.is_linked:
        field_key = lookup_field_key(attr.name)

    display_label = meta.display_label if meta else attr.name
    if attr.is_linked:
        if link is not None:
            display_label = f"{display_label} ( {_link_qualifier(document, link, attr, index)} )"
        else:
            display_label = field_key

    cell = layout.find_cell(attr.key) if layout is not None else None
    width = cell.width if cell is not None else DEFAULT_COLUMN_WIDTH
    if cell is not None:
        is_hidden = cell.hidden
    else:
        is_hidden = layout is not None

    sort = document.sort
    is_sorted = sort is not None and sort.attribute_name == attr.name

    column = ColumnDefinition(
        short_name=attr.name,
        field_key=field_key,
        display_label=display_label,
        width=width,
        is_primary_key=meta.is_primary_key if meta else False,
        is_primary_name=meta.is_primary_name if meta else False,
        is_lookup=is_lookup,
        is_hidden=is_hidden,
        is_sorted=is_sorted,
        is_sorted_descending=is_sorted and sort.descending,
        link_alias=attr.link_alias,
    )
    return column, warning


def _link_qualifier(document: QueryDocument, link: LinkRef, attr: AttributeRef, index: MetadataIndex) -> str:
    """Label of the join's "to" field on the root entity, else the link's first attribute name."""
    if link.to_field:
        to_meta = index.get((document.entity_name, link.to_field))
        if to_meta is not None:
            return to_meta.display_label
    if link.attribute_names:
        return link.attribute_names[0]
    return attr.name
