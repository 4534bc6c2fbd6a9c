"""Shared serialization helpers for the camelCase wire format.

Provides the ``snake_to_camel`` alias generator used by every Pydantic
model config, and the common ``WIRE_CONFIG`` built from it.
"""

from __future__ import annotations

import pydantic


def snake_to_camel(name: str) -> str:
    """Convert a snake_case string to camelCase.

    Args:
        name: A snake_case identifier such as
            ``"source_extensions"``.

    Returns:
        The camelCase equivalent, e.g. ``"sourceExtensions"``.
    """
    parts = name.split("_")
    return parts[0] + "".join(w.capitalize() for w in parts[1:])


WIRE_CONFIG = pydantic.ConfigDict(
    alias_generator=snake_to_camel,
    populate_by_name=True,
)
