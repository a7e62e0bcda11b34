"""Outcome messages for inline record updates."""

from collections.abc import Mapping
from typing import Literal

UpdateStatus = Literal["success", "error"]

DEFAULT_MESSAGE_KEY = "_default_message"

DEFAULT_UPDATE_MESSAGES: dict[str, dict[str, str]] = {
    "success": {DEFAULT_MESSAGE_KEY: "Data has been updated successfully!"},
    "error": {DEFAULT_MESSAGE_KEY: "Error updating the data."},
}


def update_message(
    status: UpdateStatus,
    field: str | None = None,
    overrides: Mapping[str, Mapping[str, str]] | None = None,
) -> str:
    """Resolve the message for an update outcome.

    Lookup order: a per-field override for *status*, an overridden default
    for *status*, then the built-in default.
    """
    custom = (overrides or {}).get(status, {})
    if field is not None and field in custom:
        return custom[field]
    if DEFAULT_MESSAGE_KEY in custom:
        return custom[DEFAULT_MESSAGE_KEY]
    return DEFAULT_UPDATE_MESSAGES[status][DEFAULT_MESSAGE_KEY]
