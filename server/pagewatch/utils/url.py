"""
URL and origin helpers shared by the collector and the alert engine.

None of these functions raise: unparseable input yields an empty origin
(or ``None`` for the internal-origin normalisers).
"""

from __future__ import annotations

import re
from typing import Literal
from urllib import parse

OriginKind = Literal["extension", "page", "external", "unknown"]

# Schemes browsers use to serve resources packaged inside an add-on.
EXTENSION_SCHEMES = ("moz-extension", "chrome-extension", "safari-web-extension")

_EXTENSION_PREFIXES = tuple(f"{scheme}://" for scheme in EXTENSION_SCHEMES)

_DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443}

_CSS_URL_RE = re.compile(r"""url\(\s*(['"]?)(.*?)\1\s*\)""", re.IGNORECASE)


def is_extension_url(value: str | None) -> bool:
    """Return ``True`` when *value* points at an extension-internal resource."""
    if not value:
        return False
    return value.strip().lower().startswith(_EXTENSION_PREFIXES)


def extract_hostname(url: str) -> str:
    """Extract the hostname from a URL string, or ``""`` when there is none."""
    try:
        return parse.urlparse(url).hostname or ""
    except ValueError:
        return ""


def origin_from_url(value: str | None, base: str = "") -> str:
    """Resolve *value* against *base* and return its ``scheme://host[:port]``.

    Mirrors the browser ``URL.origin`` rules closely enough for
    classification: default ports are dropped and the host is
    lower-cased.  Opaque URLs (``data:``, ``javascript:``) and
    malformed input have no origin and return ``""``.
    """
    if not value:
        return ""
    try:
        raw = value.strip()
        resolved = parse.urljoin(base, raw) if base else raw
        parsed = parse.urlparse(resolved)
        host = parsed.hostname
        port = parsed.port
    except ValueError:
        return ""

    if not parsed.scheme or not host:
        return ""

    scheme = parsed.scheme.lower()
    origin = f"{scheme}://{host}"
    if port is not None and _DEFAULT_PORTS.get(scheme) != port:
        origin += f":{port}"
    return origin


def origin_kind(origin: str, page_origin: str) -> OriginKind:
    """Classify *origin* relative to the monitored page's origin."""
    if not origin:
        return "unknown"
    if is_extension_url(origin):
        return "extension"
    if origin == page_origin:
        return "page"
    return "external"


def css_urls(style: str | None) -> list[str]:
    """Return every ``url(...)`` reference found in an inline style value."""
    if not style:
        return []
    return [match.group(2).strip() for match in _CSS_URL_RE.finditer(style) if match.group(2).strip()]


def normalize_internal_origin(url: str) -> str | None:
    """Reduce an extension URL to ``scheme://host/``.

    Returns ``None`` for non-extension schemes and malformed URLs.
    """
    try:
        parsed = parse.urlparse(str(url).strip())
    except ValueError:
        return None
    if parsed.scheme.lower() not in EXTENSION_SCHEMES or not parsed.netloc:
        return None
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}/"


def normalize_origin_pattern(pattern: str | None) -> str:
    """Turn a host-permission pattern into a comparable origin prefix.

    ``moz-extension://abc/*`` becomes ``moz-extension://abc/``; a
    pattern without a trailing separator gains one.
    """
    if not pattern:
        return ""
    value = str(pattern).strip()
    if value.endswith("/*"):
        value = value[:-1]
    if not value.endswith("/"):
        value += "/"
    return value.lower()
