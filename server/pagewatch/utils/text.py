"""Text truncation and snippet redaction for forensic evidence."""

from __future__ import annotations

import re

DEFAULT_SNIPPET_LENGTH = 220

REDACTED = "[redacted]"

_DOUBLE_QUOTED_VALUE_RE = re.compile(r'value="[^"]*"', re.IGNORECASE)
_SINGLE_QUOTED_VALUE_RE = re.compile(r"value='[^']*'", re.IGNORECASE)


def truncate(value: object, limit: int = DEFAULT_SNIPPET_LENGTH) -> str:
    """Cut *value* to *limit* characters, appending ``...`` when shortened."""
    text = "" if value is None else str(value)
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."


def sanitize_snippet(html: str | None, limit: int = DEFAULT_SNIPPET_LENGTH) -> str:
    """Replace ``value`` attributes in an HTML fragment and truncate it."""
    scrubbed = _DOUBLE_QUOTED_VALUE_RE.sub(f'value="{REDACTED}"', html or "")
    scrubbed = _SINGLE_QUOTED_VALUE_RE.sub(f"value='{REDACTED}'", scrubbed)
    return truncate(scrubbed, limit)
