"""Pydantic models for the host mutation feed.

The observer script running in the page serialises each DOM
``MutationRecord`` into these shapes before handing a batch to the
collector.  Only the fields the collector reads are carried.
"""

from __future__ import annotations

from typing import Literal

import pydantic

from pagewatch.utils.serialization import snake_to_camel

NodeType = Literal["element", "text", "other"]
MutationType = Literal["childList", "attributes", "characterData"]


class NodeSnapshot(pydantic.BaseModel):
    """A serialised DOM node with just enough context for evidence capture."""

    model_config = pydantic.ConfigDict(
        alias_generator=snake_to_camel, populate_by_name=True
    )

    node_type: NodeType = "element"
    tag: str = ""
    attributes: dict[str, str] = pydantic.Field(default_factory=dict)
    id: str = ""
    class_list: list[str] = pydantic.Field(default_factory=list)
    # 1-based position among same-tag siblings; None when the tag is unique.
    nth_of_type: int | None = None
    parent: NodeSnapshot | None = None
    outer_html: str = ""
    text_content: str = ""
    data: str = ""
    is_content_editable: bool = False
    descendants: list[NodeSnapshot] = pydantic.Field(default_factory=list)

    @pydantic.field_validator("tag")
    @classmethod
    def _lower_tag(cls, value: str) -> str:
        return value.lower()

    @property
    def is_element(self) -> bool:
        """Whether this snapshot describes an element node."""
        return self.node_type == "element"

    def has_attribute(self, name: str) -> bool:
        """Whether the element carries attribute *name*."""
        return name in self.attributes

    def get_attribute(self, name: str) -> str:
        """Return attribute *name*, or ``""`` when absent."""
        return self.attributes.get(name, "")


class MutationRecord(pydantic.BaseModel):
    """One serialised entry of a mutation batch."""

    model_config = pydantic.ConfigDict(
        alias_generator=snake_to_camel, populate_by_name=True
    )

    type: MutationType
    target: NodeSnapshot = pydantic.Field(default_factory=NodeSnapshot)
    added_nodes: list[NodeSnapshot] = pydantic.Field(default_factory=list)
    removed_nodes: list[NodeSnapshot] = pydantic.Field(default_factory=list)
    attribute_name: str | None = None
    old_value: str | None = None


class PageInfo(pydantic.BaseModel):
    """Identity of the monitored document, refreshed by the host."""

    model_config = pydantic.ConfigDict(
        alias_generator=snake_to_camel, populate_by_name=True
    )

    url: str = ""
    title: str = ""
