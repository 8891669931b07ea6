"""
Pydantic models for the grid backend.

Host-facing option shapes only. No imports from services.
"""

from gridbackend.models.grid_options import GridOptions, ViewRef

__all__ = [
    "GridOptions",
    "ViewRef",
]
