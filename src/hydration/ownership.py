"""Ownership marker stamping and the deletion gate.

Every object the kit creates carries a literal marker in its description
(or notes) field. The marker is the only proof of kit ownership.

SAFETY INVARIANTS:
1. An object whose marker field lacks the exact, case-sensitive marker
   substring is NEVER eligible for deletion, whatever its name.
2. Conditional Access policies must additionally be disabled, so a live
   security control is never removed.
3. is_owned() is pure: no I/O, no configuration lookups.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

DEFAULT_KIT_NAME = "Intune-Hydration-Kit"
MARKER_PREFIX = "Imported by"
MARKER_SEPARATOR = " - "


def ownership_marker(kit_name: str = DEFAULT_KIT_NAME) -> str:
    """Build the literal ownership marker for a kit name."""
    return f"{MARKER_PREFIX} {kit_name}"


DEFAULT_MARKER = ownership_marker()


def is_owned(
    marker_field_value: str | None,
    extra: Mapping[str, Any] | None = None,
    *,
    marker: str = DEFAULT_MARKER,
    required_state: str | None = None,
) -> bool:
    """Decide whether an existing object may be deleted by the kit.

    Args:
        marker_field_value: Current value of the object's description/notes.
        extra: Kind-specific properties of the object (e.g. CA "state").
        marker: The exact ownership marker to look for.
        required_state: If set, extra["state"] must equal this value.

    Returns:
        True only if the marker is present and any state requirement holds.
    """
    if not marker_field_value or not marker:
        return False

    if marker not in marker_field_value:
        return False

    if required_state is not None:
        state = (extra or {}).get("state")
        if state != required_state:
            return False

    return True


def stamp_marker(value: str | None, marker: str = DEFAULT_MARKER) -> str:
    """Append the ownership marker to a description or notes value.

    Args:
        value: The template's original description (may be empty).
        marker: The ownership marker.

    Returns:
        "<value> - <marker>", or just the marker when value is empty.
        A value that already carries the marker is returned unchanged.
    """
    if not value:
        return marker
    if marker in value:
        return value
    return f"{value}{MARKER_SEPARATOR}{marker}"
