"""Pydantic model for the installed-extension inventory."""

from __future__ import annotations

import pydantic

from pagewatch.utils.serialization import snake_to_camel


class ExtensionRecord(pydantic.BaseModel):
    """One installed extension as last reported by the host browser."""

    model_config = pydantic.ConfigDict(
        alias_generator=snake_to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    id: str
    name: str = ""
    version: str = ""
    enabled: bool = True
    install_type: str = ""
    update_url: str = ""
    permissions: list[str] = pydantic.Field(default_factory=list)
    host_permissions: list[str] = pydantic.Field(default_factory=list)
    permission_warnings: list[str] = pydantic.Field(default_factory=list)
    type: str = "extension"
    is_new: bool = False
    last_seen: int = 0
