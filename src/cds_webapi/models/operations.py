# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Logical operations understood by the request encoder.

Each operation kind is a frozen dataclass tagged with a ``kind`` class
attribute. :class:`PendingReference` stands in for the id of a record created
earlier in the same batch changeset.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional, Union

from ..core._error_codes import CONFIG_INVALID_VALUE, CONFIG_PENDING_REFERENCE
from ..core.errors import ConfigurationError
from .query import Query


@dataclass(frozen=True)
class PendingReference:
    """Reference to the record created by the changeset member with ``content_id``.

    Rendered as ``$<content_id>``; the server resolves it.
    """

    content_id: int

    def __post_init__(self) -> None:
        if isinstance(self.content_id, bool) or not isinstance(self.content_id, int) or self.content_id < 1:
            raise ConfigurationError(
                f"content_id must be a positive integer, got {self.content_id!r}",
                subcode=CONFIG_PENDING_REFERENCE,
            )

    def render(self) -> str:
        return f"${self.content_id}"

    def __str__(self) -> str:
        return self.render()


RecordKey = Union[str, PendingReference]


def _require(value: Any, name: str) -> None:
    if isinstance(value, PendingReference):
        return
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"{name} is required", subcode=CONFIG_INVALID_VALUE)


@dataclass(frozen=True)
class Retrieve:
    """Retrieve one record by id; ``query`` contributes ``$select``/``$expand``."""

    kind: ClassVar[str] = "retrieve"

    entity_set: str
    id: RecordKey
    query: Optional[Query] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _require(self.entity_set, "entity_set")
        _require(self.id, "id")


@dataclass(frozen=True)
class RetrieveMultiple:
    """Retrieve a page of records; ``max_page_size`` becomes ``Prefer: odata.maxpagesize``."""

    kind: ClassVar[str] = "retrieve_multiple"

    query: Query
    max_page_size: Optional[int] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.max_page_size is not None and (
            isinstance(self.max_page_size, bool) or not isinstance(self.max_page_size, int) or self.max_page_size < 1
        ):
            raise ConfigurationError("max_page_size must be a positive integer", subcode=CONFIG_INVALID_VALUE)


@dataclass(frozen=True)
class FetchXmlQuery:
    """Execute a FetchXML query, optionally positioned on a page with a paging cookie.

    ``page_size`` is written to the ``count`` attribute of ``<fetch>``;
    ``paging_cookie`` must already be XML-escaped (see :class:`~cds_webapi.models.paging.PagingCookie`).
    """

    kind: ClassVar[str] = "fetch_xml"

    entity_set: str
    fetch_xml: str
    page_number: Optional[int] = None
    paging_cookie: Optional[str] = None
    page_size: Optional[int] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _require(self.entity_set, "entity_set")
        _require(self.fetch_xml, "fetch_xml")
        for name in ("page_number", "page_size"):
            value = getattr(self, name)
            if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 1):
                raise ConfigurationError(f"{name} must be a positive integer", subcode=CONFIG_INVALID_VALUE)


@dataclass(frozen=True)
class Save:
    """Create (no id) or partially update (id) a record."""

    kind: ClassVar[str] = "save"

    entity_set: str
    data: Dict[str, Any]
    id: Optional[RecordKey] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _require(self.entity_set, "entity_set")
        if not isinstance(self.data, dict):
            raise ConfigurationError("save data must be a dict", subcode=CONFIG_INVALID_VALUE)
        if self.id is not None:
            _require(self.id, "id")

    @property
    def is_create(self) -> bool:
        return self.id is None


@dataclass(frozen=True)
class Delete:
    kind: ClassVar[str] = "delete"

    entity_set: str
    id: RecordKey
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _require(self.entity_set, "entity_set")
        _require(self.id, "id")


@dataclass(frozen=True)
class BoundAction:
    kind: ClassVar[str] = "bound_action"

    entity_set: str
    id: RecordKey
    name: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    bound_prefix: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _require(self.entity_set, "entity_set")
        _require(self.id, "id")
        _require(self.name, "name")


@dataclass(frozen=True)
class BoundFunction:
    kind: ClassVar[str] = "bound_function"

    entity_set: str
    id: RecordKey
    name: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    bound_prefix: Optional[str] = None
    parameter_types: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _require(self.entity_set, "entity_set")
        _require(self.id, "id")
        _require(self.name, "name")


@dataclass(frozen=True)
class UnboundAction:
    kind: ClassVar[str] = "unbound_action"

    name: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _require(self.name, "name")


@dataclass(frozen=True)
class UnboundFunction:
    kind: ClassVar[str] = "unbound_function"

    name: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    parameter_types: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _require(self.name, "name")


@dataclass(frozen=True)
class OptionSetLookup:
    """Fetch the options of a picklist attribute."""

    kind: ClassVar[str] = "optionset"

    entity_logical_name: str
    attribute_logical_name: str
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _require(self.entity_logical_name, "entity_logical_name")
        _require(self.attribute_logical_name, "attribute_logical_name")


Operation = Union[
    Retrieve,
    RetrieveMultiple,
    FetchXmlQuery,
    Save,
    Delete,
    BoundAction,
    BoundFunction,
    UnboundAction,
    UnboundFunction,
    OptionSetLookup,
]

OPERATION_TYPES = (
    Retrieve,
    RetrieveMultiple,
    FetchXmlQuery,
    Save,
    Delete,
    BoundAction,
    BoundFunction,
    UnboundAction,
    UnboundFunction,
    OptionSetLookup,
)


__all__ = [
    "PendingReference",
    "RecordKey",
    "Retrieve",
    "RetrieveMultiple",
    "FetchXmlQuery",
    "Save",
    "Delete",
    "BoundAction",
    "BoundFunction",
    "UnboundAction",
    "UnboundFunction",
    "OptionSetLookup",
    "Operation",
    "OPERATION_TYPES",
]
