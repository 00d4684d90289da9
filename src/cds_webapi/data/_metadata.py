# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Caller-owned cache of option-set metadata."""

from __future__ import annotations

import threading
from typing import Dict, Optional, Tuple

from ..models.metadata import OptionSet


class MetadataCache:
    """
    Memoizes option sets by ``(entity, attribute)``, case-insensitively.

    Nothing is cached unless the caller passes a cache to the client, and the
    cache lives exactly as long as the caller keeps it. Safe to share between
    threads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._optionsets: Dict[Tuple[str, str], OptionSet] = {}

    @staticmethod
    def _key(entity_logical_name: str, attribute_logical_name: str) -> Tuple[str, str]:
        return (entity_logical_name.strip().lower(), attribute_logical_name.strip().lower())

    def get_optionset(self, entity_logical_name: str, attribute_logical_name: str) -> Optional[OptionSet]:
        with self._lock:
            return self._optionsets.get(self._key(entity_logical_name, attribute_logical_name))

    def put_optionset(self, optionset: OptionSet) -> None:
        key = self._key(optionset.entity_logical_name, optionset.attribute_logical_name)
        with self._lock:
            self._optionsets[key] = optionset

    def invalidate(self, entity_logical_name: Optional[str] = None) -> None:
        """Drop cached entries for one entity, or everything when no entity is given."""
        with self._lock:
            if entity_logical_name is None:
                self._optionsets.clear()
                return
            wanted = entity_logical_name.strip().lower()
            for key in [k for k in self._optionsets if k[0] == wanted]:
                del self._optionsets[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._optionsets)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        with self._lock:
            return self._key(*key) in self._optionsets


__all__ = ["MetadataCache"]
