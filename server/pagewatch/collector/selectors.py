"""
CSS selector construction for captured elements.

Selectors are forensic hints, not guaranteed-unique locators: an id
shortcut when one exists, otherwise up to three ancestor levels of
``tag.class:nth-of-type(n)``.
"""

from __future__ import annotations

from pagewatch.models.dom import NodeSnapshot

MAX_SELECTOR_DEPTH = 3
MAX_CLASSES = 2


def css_escape(value: str) -> str:
    """Escape an identifier for use in a CSS selector.

    Follows the ``CSS.escape`` rules for the common cases: ASCII
    characters outside ``[A-Za-z0-9_-]`` are backslash-escaped, non-ASCII
    passes through, and a leading digit becomes a hex escape.
    """
    out: list[str] = []
    for index, char in enumerate(value):
        if char == "\0":
            out.append("\ufffd")
        elif index == 0 and char.isdigit():
            out.append(f"\\{ord(char):x} ")
        elif index == 1 and char.isdigit() and value[0] == "-":
            out.append(f"\\{ord(char):x} ")
        elif char.isascii() and (char.isalnum() or char in "_-"):
            out.append(char)
        elif not char.isascii():
            out.append(char)
        else:
            out.append(f"\\{char}")
    if value == "-":
        return "\\-"
    return "".join(out)


def _part(node: NodeSnapshot) -> str:
    part = node.tag
    classes = [css_escape(cls) for cls in node.class_list[:MAX_CLASSES] if cls]
    if classes:
        part += "." + ".".join(classes)
    if node.nth_of_type is not None:
        part += f":nth-of-type({node.nth_of_type})"
    return part


def build_selector(node: NodeSnapshot | None) -> str:
    """Build a selector for an element snapshot; ``""`` for non-elements."""
    if node is None or not node.is_element or not node.tag:
        return ""
    if node.id:
        return f"#{css_escape(node.id)}"

    parts: list[str] = []
    current: NodeSnapshot | None = node
    depth = 0
    while current is not None and current.is_element and current.tag and depth < MAX_SELECTOR_DEPTH:
        parts.insert(0, _part(current))
        parent = current.parent
        if parent is not None and parent.id:
            parts.insert(0, f"#{css_escape(parent.id)}")
            break
        current = parent
        depth += 1

    return " > ".join(parts)
