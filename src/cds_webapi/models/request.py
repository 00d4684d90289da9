# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Encoded HTTP request, ready for the transport or for a batch part."""

from __future__ import annotations

import datetime as _dt
import json
import uuid
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from ..common.constants import WRITE_METHODS
from ..common.literals import format_datetime
from .operations import PendingReference


def merge_headers(base: Mapping[str, str], overrides: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """
    Merge two header maps; keys are unique case-insensitively.

    An override replaces the base entry in place (keeping its position) and
    takes the override's spelling of the name.
    """
    merged: Dict[str, str] = dict(base)
    for name, value in (overrides or {}).items():
        existing = next((k for k in merged if k.lower() == name.lower()), None)
        if existing is None:
            merged[name] = value
            continue
        rebuilt: Dict[str, str] = {}
        for k, v in merged.items():
            if k == existing:
                rebuilt[name] = value
            else:
                rebuilt[k] = v
        merged = rebuilt
    return merged


@dataclass(frozen=True)
class RequestDescriptor:
    """
    An HTTP request in protocol terms.

    :param method: ``GET``, ``POST``, ``PATCH`` or ``DELETE``.
    :param relative_url: URL relative to the service root (``accounts(...)``) or
        to a pending reference (``$1/...``).
    :param headers: Ordered request headers, unique case-insensitively.
    :param body: JSON-serializable body, or ``None``.
    :param content_id: Changeset Content-ID; set by the batch encoder only.
    :param references: Pending references the URL or body uses.
    """

    method: str
    relative_url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Any] = None
    content_id: Optional[int] = None
    references: Tuple[PendingReference, ...] = ()

    @property
    def is_write(self) -> bool:
        return self.method.upper() in WRITE_METHODS

    @property
    def is_pending_relative(self) -> bool:
        """Whether the URL starts at a pending reference (``$n/...``)."""
        return self.relative_url.startswith("$")

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for k, v in self.headers.items():
            if k.lower() == wanted:
                return v
        return None

    def body_text(self) -> Optional[str]:
        if self.body is None:
            return None
        return json.dumps(self.body, default=_json_default)

    def body_bytes(self) -> Optional[bytes]:
        text = self.body_text()
        return text.encode("utf-8") if text is not None else None

    def with_content_id(self, content_id: Optional[int]) -> "RequestDescriptor":
        return replace(self, content_id=content_id)

    def with_headers(self, headers: Mapping[str, str]) -> "RequestDescriptor":
        return replace(self, headers=merge_headers(self.headers, headers))


def _json_default(value: Any) -> Any:
    if isinstance(value, PendingReference):
        return value.render()
    if isinstance(value, _dt.datetime):
        return format_datetime(value)
    if isinstance(value, _dt.date):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


__all__ = ["RequestDescriptor", "merge_headers"]
