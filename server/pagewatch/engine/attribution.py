"""
Heuristic attribution of extension-origin evidence to installed add-ons.

An extension is reported as a probable source when one of its declared
host permissions for an internal scheme covers an observed extension
origin.  This is correlation over declared permissions, not proof that
the extension produced the change.
"""

from __future__ import annotations

from collections.abc import Iterable

from pagewatch.models.alert import SourceExtension
from pagewatch.models.inventory import ExtensionRecord
from pagewatch.utils import url


def matches_internal_origin(host_permissions: Iterable[str], origin: str) -> bool:
    """Whether any internal-scheme pattern in *host_permissions* covers *origin*."""
    if not origin:
        return False
    for pattern in host_permissions:
        if not url.is_extension_url(pattern):
            continue
        normalized = url.normalize_origin_pattern(pattern)
        if origin == normalized or origin.startswith(normalized):
            return True
    return False


def resolve_source_extensions(
    extension_urls: Iterable[str],
    extensions: Iterable[ExtensionRecord],
) -> list[SourceExtension]:
    """Extensions whose permissions are consistent with the observed URLs.

    Each extension appears at most once, tagged with the first origin
    it matched.
    """
    origins = list(dict.fromkeys(o for o in map(url.normalize_internal_origin, extension_urls) if o))
    if not origins:
        return []

    matches: dict[str, SourceExtension] = {}
    for extension in extensions:
        if extension.id in matches:
            continue
        for origin in origins:
            if matches_internal_origin(extension.host_permissions, origin):
                matches[extension.id] = SourceExtension(
                    id=extension.id,
                    name=extension.name,
                    version=extension.version,
                    install_type=extension.install_type,
                    matched_origin=origin,
                )
                break
    return list(matches.values())
