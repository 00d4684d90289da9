# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Record data model for Web API entities.

A record keeps the raw attribute values, the server-formatted display values
and the remaining OData annotations side by side, with dict-like access to
the raw values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

from ..common.constants import ANNOTATION_ETAG, ANNOTATION_FORMATTED_VALUE
from ..common.literals import is_guid, normalize_guid

_FORMATTED_SUFFIX = "@" + ANNOTATION_FORMATTED_VALUE


@dataclass
class Record:
    """
    Entity record with raw values, formatted values and annotations.

    :param data: Raw attribute values keyed by attribute name.
    :type data: dict[str, Any]
    :param formatted_values: Display strings keyed by attribute name, from
        ``<attribute>@OData.Community.Display.V1.FormattedValue``.
    :type formatted_values: dict[str, str]
    :param annotations: Every other annotation, keyed by its full name
        (``@odata.context``, ``_parentid_value@Microsoft.Dynamics.CRM.lookuplogicalname``, ...).
    :type annotations: dict[str, Any]
    :param etag: Optional ETag for optimistic concurrency control.
    :type etag: str | None
    :param entity_set: Entity set the record was read from, when known.
    :type entity_set: str | None

    Example::

        record = client.retrieve("accounts", account_id)
        record["statecode"]               # 0
        record.formatted("statecode")     # "Active"
        record.etag                       # 'W/"1234"'
    """

    data: Dict[str, Any] = field(default_factory=dict)
    formatted_values: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, Any] = field(default_factory=dict)
    etag: Optional[str] = None
    entity_set: Optional[str] = None

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.data[key] = value

    def __delitem__(self, key: str) -> None:
        del self.data[key]

    def __contains__(self, key: object) -> bool:
        return key in self.data

    def __iter__(self) -> Iterator[str]:
        return iter(self.data)

    def __len__(self) -> int:
        return len(self.data)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def keys(self):
        return self.data.keys()

    def values(self):
        return self.data.values()

    def items(self):
        return self.data.items()

    def formatted(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """
        Display value of an attribute as formatted by the server.

        :param key: Attribute name.
        :param default: Returned when the server sent no formatted value.
        :return: Formatted value or ``default``.
        :rtype: str | None
        """
        return self.formatted_values.get(key, default)

    def id_for(self, attribute: str) -> Optional[str]:
        """Return the attribute value as a normalized GUID, or ``None`` if it is not one."""
        value = self.data.get(attribute)
        if value is None or not is_guid(value):
            return None
        return normalize_guid(str(value))

    def to_dict(self) -> Dict[str, Any]:
        """Raw attribute values only, as a plain dictionary."""
        return dict(self.data)

    def to_full_dict(self) -> Dict[str, Any]:
        """
        Convert to a dictionary including formatted values and metadata.

        :rtype: dict[str, Any]
        """
        return {
            "data": dict(self.data),
            "formatted_values": dict(self.formatted_values),
            "annotations": dict(self.annotations),
            "etag": self.etag,
            "entity_set": self.entity_set,
        }

    @classmethod
    def from_api_response(cls, response_data: Dict[str, Any], *, entity_set: Optional[str] = None) -> "Record":
        """
        Split a Web API entity payload into values, formatted values and annotations.

        :param response_data: Raw entity dictionary from the response body.
        :type response_data: dict[str, Any]
        :param entity_set: Entity set name to record on the result.
        :type entity_set: str | None
        :rtype: Record
        """
        data: Dict[str, Any] = {}
        formatted: Dict[str, str] = {}
        annotations: Dict[str, Any] = {}
        etag = None
        for key, value in response_data.items():
            if key == ANNOTATION_ETAG:
                etag = value
            elif key.endswith(_FORMATTED_SUFFIX) and not key.startswith("@"):
                formatted[key[: -len(_FORMATTED_SUFFIX)]] = value
            elif "@" in key:
                annotations[key] = value
            else:
                data[key] = value
        return cls(data=data, formatted_values=formatted, annotations=annotations, etag=etag, entity_set=entity_set)


__all__ = ["Record"]
