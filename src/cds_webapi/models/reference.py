# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Entity references parsed from ``OData-EntityId`` headers and entity URLs."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urlparse

from ..common.literals import normalize_guid

# ".../accounts(00000000-0000-0000-0000-000000000001)" or "accounts(name='x')"
_ENTITY_URL_RE = re.compile(r"(?:^|/)([A-Za-z_][A-Za-z0-9_.]*)\(([^()]*)\)/?$")


@dataclass(frozen=True)
class EntityReference:
    """
    Pointer to one record.

    :param entity_set_name: Entity set, e.g. ``"accounts"``.
    :param id: Record key. GUIDs are lowercase 8-4-4-4-12 without braces;
        alternate keys (``name='x'``) are kept as sent.
    """

    entity_set_name: str
    id: str

    def to_relative_url(self) -> str:
        return f"{self.entity_set_name}({self.id})"

    def __str__(self) -> str:
        return self.to_relative_url()


def parse_entity_reference(url: Optional[str]) -> Optional[EntityReference]:
    """
    Parse an entity URL into an :class:`EntityReference`.

    Absolute and relative URLs are accepted; query strings and fragments are
    ignored. Returns ``None`` when the text does not end in ``set(key)``.
    """
    if not url or not isinstance(url, str):
        return None
    path = urlparse(url.strip()).path if "://" in url else url.strip().split("?", 1)[0].split("#", 1)[0]
    m = _ENTITY_URL_RE.search(unquote(path))
    if not m:
        return None
    entity_set, key = m.group(1), m.group(2).strip()
    if not key:
        return None
    return EntityReference(entity_set_name=entity_set, id=normalize_guid(key))


__all__ = ["EntityReference", "parse_entity_reference"]
