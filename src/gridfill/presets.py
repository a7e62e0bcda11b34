"""Saved filter/sort presets.

A preset is the portable part of a :class:`~gridfill.models.GridState`
(search term, filters and sort) as JSON, so a grid view can be downloaded
and re-applied later.
"""

from pydantic import BaseModel, Field, ValidationError

from gridfill.exceptions import PresetError
from gridfill.models import FilterSpec, GridState, SearchState, SortState


class GridPreset(BaseModel):
    search: SearchState = SearchState()
    filters: dict[str, FilterSpec] = Field(default_factory=dict)
    sort: SortState = SortState()


def dump_preset(state: GridState) -> str:
    """Serialise the search, filters and sort of *state* as JSON text."""
    preset = GridPreset(search=state.search, filters=state.filters, sort=state.sort)
    return preset.model_dump_json(indent=2)


def load_preset(text: str | bytes, state: GridState | None = None) -> GridState:
    """Apply a JSON preset to *state* and reset it to the first page.

    Raises:
        PresetError: If *text* is not a valid preset.
    """
    try:
        preset = GridPreset.model_validate_json(text)
    except ValidationError as exc:
        raise PresetError(f"Invalid grid preset: {exc.error_count()} error(s)") from exc

    state = state or GridState()
    return state.model_copy(
        update={
            "search": preset.search,
            "filters": preset.filters,
            "sort": preset.sort,
            "pagination": state.pagination.model_copy(update={"current_page": 1}),
        }
    )
