"""
Grid Kernel — Layout Merge

Decodes layout JSON and applies its declared column order:

  {"Object": 1, "Rows": [{"Cells": [{"Name": "name", "Width": 300, "IsHidden": false}]}]}

Only the first row is read. Its cell sequence is the column order.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

from gridengine.kernel.types import DEFAULT_COLUMN_WIDTH, AttributeRef, CellSpec, LayoutDescriptor

logger = logging.getLogger(__name__)


class MalformedLayoutError(ValueError):
    """Layout JSON text could not be decoded into an object."""


def parse_layout(layout: str | dict[str, Any] | LayoutDescriptor | None) -> LayoutDescriptor | None:
    """
    Decode layout JSON (text or already-decoded dict).

    Returns None when there is no layout at all. Empty text counts as no
    layout.
    """
    if layout is None or isinstance(layout, LayoutDescriptor):
        return layout
    if isinstance(layout, str):
        if not layout.strip():
            return None
        try:
            layout = json.loads(layout)
        except json.JSONDecodeError as exc:
            raise MalformedLayoutError(f"Layout is not valid JSON: {exc}") from exc
    if not isinstance(layout, dict):
        raise MalformedLayoutError(f"Layout must be a JSON object, got {type(layout).__name__}")

    object_id = layout.get("Object")
    if object_id is not None:
        try:
            object_id = int(object_id)
        except (TypeError, ValueError):
            logger.warning("layout: ignoring non-numeric Object value %r", object_id)
            object_id = None

    cells: tuple[CellSpec, ...] | None = None
    rows = layout.get("Rows")
    if rows:
        raw_cells = (rows[0] or {}).get("Cells") or []
        cells = tuple(_parse_cell(c) for c in raw_cells if isinstance(c, dict) and c.get("Name"))

    return LayoutDescriptor(object_id=object_id, cells=cells)


def _parse_cell(d: dict[str, Any]) -> CellSpec:
    width = d.get("Width")
    return CellSpec(
        name=d["Name"],
        width=int(width) if isinstance(width, (int, float)) else DEFAULT_COLUMN_WIDTH,
        hidden=_parse_flag(d.get("IsHidden")),
    )


def _parse_flag(value: Any) -> bool:
    """JSON booleans as is; the strings "true"/"false" by value; anything else is False."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def merge_layout_order(
    attributes: Sequence[AttributeRef],
    layout: LayoutDescriptor | None,
) -> tuple[AttributeRef, ...]:
    """
    Reorder attributes to follow the layout's cell order.

    Attributes the layout does not name go after all named ones, keeping
    their document order. Without a layout, or with a layout that declares
    no rows, the order is unchanged.
    """
    if layout is None or layout.cells is None:
        return tuple(attributes)

    order = layout.order
    positions: dict[str, int] = {}
    for index, name in enumerate(order):
        positions.setdefault(name, index)
    unknown = len(order)
    return tuple(sorted(attributes, key=lambda a: positions.get(a.key, unknown)))
