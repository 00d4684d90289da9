# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""OData literal formatting and GUID normalization."""

from __future__ import annotations

import datetime as _dt
import json
import re
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from .constants import CRM_NAMESPACE

_GUID_LOOSE_RE = re.compile(r"^\{?([0-9a-fA-F]{8})-?([0-9a-fA-F]{4})-?([0-9a-fA-F]{4})-?([0-9a-fA-F]{4})-?([0-9a-fA-F]{12})\}?$")

# Type hints whose literals are never quoted
_BARE_TYPES = {
    "edm.guid",
    "edm.int16",
    "edm.int32",
    "edm.int64",
    "edm.decimal",
    "edm.double",
    "edm.single",
    "edm.boolean",
    "edm.datetimeoffset",
    "edm.date",
}


def normalize_guid(value: str) -> str:
    """Return the canonical lowercase 8-4-4-4-12 form of a GUID.

    Braces and dashes are stripped and re-applied. Values that are not GUIDs
    (alternate keys, for example) are returned stripped but otherwise unchanged.
    """
    text = (value or "").strip()
    m = _GUID_LOOSE_RE.match(text)
    if not m:
        return text
    return "-".join(m.groups()).lower()


def is_guid(value: Any) -> bool:
    if isinstance(value, uuid.UUID):
        return True
    return isinstance(value, str) and _GUID_LOOSE_RE.match(value.strip()) is not None


def escape_quotes(value: str) -> str:
    """Escape single quotes for OData string literals (by doubling them)."""
    return value.replace("'", "''")


def format_datetime(value: _dt.datetime) -> str:
    """Extended ISO 8601 in UTC with a ``Z`` suffix. Naive values are taken as UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(_dt.timezone.utc).replace(tzinfo=None)
    timespec = "milliseconds" if value.microsecond else "seconds"
    return value.isoformat(timespec=timespec) + "Z"


def format_literal(value: Any, type_hint: Optional[str] = None, *, infer_bare: bool = True) -> str:
    """
    Format a Python value as an OData URL literal.

    Strings are quoted (quotes doubled) except GUIDs and
    ``Microsoft.Dynamics.CRM`` enum literals; numbers, booleans and GUIDs are
    bare; dates use extended ISO form; dicts and lists are rendered as JSON.

    :param type_hint: Optional EDM type name from metadata (e.g. ``Edm.String``)
        that overrides the value-based guess for strings.
    :param infer_bare: Whether GUID-shaped strings and enum literals are emitted
        bare when no type hint says otherwise.
    """
    hint = (type_hint or "").lower()
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return format_literal(value.value, type_hint, infer_bare=infer_bare)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, _dt.datetime):
        return format_datetime(value)
    if isinstance(value, _dt.date):
        return value.isoformat()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"))
    text = str(value)
    if hint == "edm.string":
        return f"'{escape_quotes(text)}'"
    if hint in _BARE_TYPES:
        return normalize_guid(text) if hint == "edm.guid" else text
    if infer_bare and is_guid(text):
        return normalize_guid(text)
    if infer_bare and text.startswith(CRM_NAMESPACE):
        return text
    return f"'{escape_quotes(text)}'"


__all__ = ["normalize_guid", "is_guid", "escape_quotes", "format_datetime", "format_literal"]
