"""Options the grid host passes to the view pipeline."""

from __future__ import annotations

from pydantic import BaseModel, Field

from gridengine.kernel.types import FeatureToggles, ViewItem


class ViewRef(BaseModel):
    """A saved view the user can switch to."""

    model_config = {"extra": "forbid"}

    name: str
    id: str = Field(min_length=1)
    active: bool = False

    def to_view_item(self) -> ViewItem:
        return ViewItem(display_name=self.name, identifier=self.id, is_active=self.active)


class GridOptions(BaseModel):
    """Host-supplied configuration for one grid."""

    model_config = {"extra": "forbid"}

    title: str | None = None

    allow_search_box: bool = False
    allow_edit_button: bool = False
    allow_add_button: bool = False
    allow_open_associated_records_button: bool = False
    allow_refresh_grid_view_button: bool = False
    allow_open_in_new_window_button: bool = False

    views: list[ViewRef] | None = None  # selectable views; None hides the picker
    view_id: str | None = None  # single saved view, used when views is None
    custom_filter_conditions: list[str] = Field(default_factory=list)

    def features(self) -> FeatureToggles:
        return FeatureToggles(
            allow_search_box=self.allow_search_box,
            allow_edit_button=self.allow_edit_button,
            allow_add_button=self.allow_add_button,
            allow_open_associated_records_button=self.allow_open_associated_records_button,
            allow_refresh_grid_view_button=self.allow_refresh_grid_view_button,
            allow_open_in_new_window_button=self.allow_open_in_new_window_button,
        )

    def view_items(self) -> tuple[ViewItem, ...] | None:
        if self.views is None:
            return None
        return tuple(v.to_view_item() for v in self.views)

    def active_view_id(self) -> str | None:
        """Id of the view to load first: the active picker entry, else view_id."""
        if self.views is not None:
            return next((v.id for v in self.views if v.active), None)
        return self.view_id
