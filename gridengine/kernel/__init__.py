"""
Grid Kernel — the pure engine.

Four components:
  fetchxml  — FetchXML text → QueryDocument
  filters   — (FetchXML, condition fragments) → FetchXML
  layout    — layout JSON → LayoutDescriptor, plus column reordering
  columns   — (QueryDocument, layout, metadata) → ColumnModel

No IO happens here. Metadata and saved views are fetched by gridbackend.
"""

from gridengine.kernel.columns import build_columns, lookup_field_key, metadata_request
from gridengine.kernel.fetchxml import MalformedDocumentError, parse_fetch_xml
from gridengine.kernel.filters import inject_conditions
from gridengine.kernel.layout import MalformedLayoutError, merge_layout_order, parse_layout

__all__ = [
    "parse_fetch_xml",
    "inject_conditions",
    "parse_layout",
    "merge_layout_order",
    "metadata_request",
    "build_columns",
    "lookup_field_key",
    "MalformedDocumentError",
    "MalformedLayoutError",
]
