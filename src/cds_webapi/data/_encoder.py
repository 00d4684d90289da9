# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Request encoder: logical operations to :class:`RequestDescriptor`.

The encoder is stateless. It renders URLs relative to the service root
(``{base_url}/api/data/{version}``) and the standard OData headers; the
client or the batch encoder decides where the request goes.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote

from ..common.constants import (
    CONTENT_TYPE_JSON,
    HEADER_ACCEPT,
    HEADER_CONTENT_TYPE,
    HEADER_ODATA_MAX_VERSION,
    HEADER_ODATA_VERSION,
    HEADER_PREFER,
    ODATA_VERSION,
    PICKLIST_METADATA_TYPE,
    PREFER_FORMATTED_VALUES,
    PREFER_MAX_PAGE_SIZE,
)
from ..common.literals import escape_quotes, format_literal, normalize_guid
from ..core._error_codes import CONFIG_INVALID_VALUE, CONFIG_PAGING_CONFLICT
from ..core.errors import ConfigurationError
from ..models.operations import (
    BoundAction,
    BoundFunction,
    Delete,
    FetchXmlQuery,
    Operation,
    OptionSetLookup,
    PendingReference,
    RecordKey,
    Retrieve,
    RetrieveMultiple,
    Save,
    UnboundAction,
    UnboundFunction,
)
from ..models.query import Query, encode_query_value
from ..models.request import RequestDescriptor, merge_headers

_FETCH_START_TAG_RE = re.compile(r"<fetch\b[^>]*>", re.IGNORECASE)
_FETCH_TOP_RE = re.compile(r"\stop\s*=", re.IGNORECASE)


def entity_path(entity_set: str, key: RecordKey) -> str:
    """``accounts(<guid>)`` for a key, ``$n`` for a pending reference."""
    if isinstance(key, PendingReference):
        return key.render()
    return f"{entity_set}({normalize_guid(key)})"


def collect_references(value: Any) -> Tuple[PendingReference, ...]:
    """All pending references in a (nested) body value, in first-use order."""
    found: List[PendingReference] = []

    def walk(v: Any) -> None:
        if isinstance(v, PendingReference):
            if v not in found:
                found.append(v)
        elif isinstance(v, Mapping):
            for item in v.values():
                walk(item)
        elif isinstance(v, (list, tuple)):
            for item in v:
                walk(item)

    walk(value)
    return tuple(found)


def render_function_call(
    name: str,
    parameters: Mapping[str, Any],
    parameter_types: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Render a function invocation with parameter aliases.

    ``render_function_call("GetQuote", {"Amount": 100})`` gives
    ``GetQuote(Amount=@Amount)?@Amount=100``. ``None`` values are left out and a
    function without parameters renders as ``Name()``.
    """
    types = parameter_types or {}
    present = [(k, v) for k, v in parameters.items() if v is not None]
    if not present:
        return f"{name}()"
    aliases = ",".join(f"{k}=@{k}" for k, _ in present)
    values = "&".join(f"@{k}={encode_query_value(format_literal(v, types.get(k)))}" for k, v in present)
    return f"{name}({aliases})?{values}"


def _qualified(name: str, bound_prefix: Optional[str]) -> str:
    prefix = (bound_prefix or "").strip().strip(".")
    return f"{prefix}.{name}" if prefix else name


def inject_fetch_paging(
    fetch_xml: str,
    *,
    page_number: Optional[int] = None,
    paging_cookie: Optional[str] = None,
    page_size: Optional[int] = None,
) -> str:
    """
    Set ``page``, ``paging-cookie`` and ``count`` on the root ``<fetch>`` element.

    Existing values of those attributes are replaced; everything else in the
    document is left byte-for-byte unchanged. ``paging_cookie`` is inserted as
    given, so it must already be XML-escaped.

    :raises ~cds_webapi.core.errors.ConfigurationError: If there is no ``<fetch>`` element,
        or if paging is requested for a ``<fetch>`` that sets ``top``.
    """
    m = _FETCH_START_TAG_RE.search(fetch_xml)
    if m is None:
        raise ConfigurationError("FetchXML must have a <fetch> root element", subcode=CONFIG_INVALID_VALUE)
    if page_number is None and page_size is None and not paging_cookie:
        return fetch_xml
    tag = m.group(0)
    if _FETCH_TOP_RE.search(tag):
        raise ConfigurationError(
            "FetchXML with a top attribute cannot be paged",
            subcode=CONFIG_PAGING_CONFLICT,
        )
    closing = "/>" if tag.endswith("/>") else ">"
    body = tag[: -len(closing)]
    replaced = [a for a, present in (("page", page_number), ("paging-cookie", paging_cookie), ("count", page_size)) if present]
    for attr in replaced:
        body = re.sub(r'\s%s\s*=\s*("[^"]*"|\'[^\']*\')' % re.escape(attr), "", body, flags=re.IGNORECASE)
    extra = ""
    if page_size is not None:
        extra += f' count="{page_size}"'
    if page_number is not None:
        extra += f' page="{page_number}"'
    if paging_cookie:
        extra += f' paging-cookie="{paging_cookie}"'
    return fetch_xml[: m.start()] + body.rstrip() + extra + closing + fetch_xml[m.end():]


class RequestEncoder:
    """
    Encodes logical operations into request descriptors.

    :param include_formatted_values: Ask the server for formatted values via
        ``Prefer: odata.include-annotations``. Default is True.
    :type include_formatted_values: :class:`bool`

    Example::

        encoder = RequestEncoder()
        d = encoder.encode(Save("accounts", {"name": "Contoso"}))
        d.method, d.relative_url     # ('POST', 'accounts')
    """

    def __init__(self, include_formatted_values: bool = True) -> None:
        self.include_formatted_values = include_formatted_values
        self._dispatch: Dict[type, Callable[[Any], RequestDescriptor]] = {
            Retrieve: self._retrieve,
            RetrieveMultiple: self._retrieve_multiple,
            FetchXmlQuery: self._fetch_xml,
            Save: self._save,
            Delete: self._delete,
            BoundAction: self._bound_action,
            BoundFunction: self._bound_function,
            UnboundAction: self._unbound_action,
            UnboundFunction: self._unbound_function,
            OptionSetLookup: self._optionset,
        }

    # ------------------------------------------------------------------ headers
    def default_headers(self, *, has_body: bool = False) -> Dict[str, str]:
        headers = {
            HEADER_ODATA_MAX_VERSION: ODATA_VERSION,
            HEADER_ODATA_VERSION: ODATA_VERSION,
            HEADER_ACCEPT: "application/json",
        }
        if self.include_formatted_values:
            headers[HEADER_PREFER] = PREFER_FORMATTED_VALUES
        if has_body:
            headers[HEADER_CONTENT_TYPE] = CONTENT_TYPE_JSON
        return headers

    def _descriptor(
        self,
        method: str,
        relative_url: str,
        caller_headers: Mapping[str, str],
        *,
        body: Any = None,
        references: Tuple[PendingReference, ...] = (),
        prefer: Optional[str] = None,
    ) -> RequestDescriptor:
        headers = merge_headers(self.default_headers(has_body=body is not None), caller_headers)
        if prefer:
            current = next((v for k, v in headers.items() if k.lower() == HEADER_PREFER.lower()), None)
            if current is None:
                headers = merge_headers(headers, {HEADER_PREFER: prefer})
            elif prefer.split("=", 1)[0] not in current:
                headers = merge_headers(headers, {HEADER_PREFER: f"{current},{prefer}"})
        return RequestDescriptor(
            method=method,
            relative_url=relative_url,
            headers=headers,
            body=body,
            references=references,
        )

    # ------------------------------------------------------------------ encode
    def encode(self, operation: Operation) -> RequestDescriptor:
        """
        Encode one operation.

        :raises ~cds_webapi.core.errors.ConfigurationError: For unknown operation
            types or invalid operation settings.
        """
        handler = self._dispatch.get(type(operation))
        if handler is None:
            raise ConfigurationError(
                f"Unsupported operation type: {type(operation).__name__}", subcode=CONFIG_INVALID_VALUE
            )
        return handler(operation)

    def encode_all(self, operations: List[Operation]) -> List[RequestDescriptor]:
        return [self.encode(op) for op in operations]

    # ------------------------------------------------------------------ kinds
    def _retrieve(self, op: Retrieve) -> RequestDescriptor:
        url = entity_path(op.entity_set, op.id)
        if op.query is not None:
            qs = Query(_select=op.query.selected, _expand=op.query.expansions).to_query_string()
            if qs:
                url = f"{url}?{qs}"
        return self._descriptor("GET", url, op.headers, references=_refs(op.id))

    def _retrieve_multiple(self, op: RetrieveMultiple) -> RequestDescriptor:
        if op.max_page_size is not None and op.query.row_limit is not None:
            raise ConfigurationError(
                "top and max_page_size cannot be combined; $top disables server-driven paging",
                subcode=CONFIG_PAGING_CONFLICT,
            )
        prefer = PREFER_MAX_PAGE_SIZE.format(op.max_page_size) if op.max_page_size is not None else None
        return self._descriptor("GET", op.query.to_relative_url(), op.headers, prefer=prefer)

    def _fetch_xml(self, op: FetchXmlQuery) -> RequestDescriptor:
        xml = inject_fetch_paging(
            op.fetch_xml.strip(),
            page_number=op.page_number,
            paging_cookie=op.paging_cookie,
            page_size=op.page_size,
        )
        return self._descriptor("GET", f"{op.entity_set}?fetchXml={quote(xml, safe='')}", op.headers)

    def _save(self, op: Save) -> RequestDescriptor:
        refs = collect_references(op.data)
        if op.id is None:
            return self._descriptor("POST", op.entity_set, op.headers, body=dict(op.data), references=refs)
        refs = _merge_refs(_refs(op.id), refs)
        return self._descriptor("PATCH", entity_path(op.entity_set, op.id), op.headers, body=dict(op.data), references=refs)

    def _delete(self, op: Delete) -> RequestDescriptor:
        return self._descriptor("DELETE", entity_path(op.entity_set, op.id), op.headers, references=_refs(op.id))

    def _bound_action(self, op: BoundAction) -> RequestDescriptor:
        url = f"{entity_path(op.entity_set, op.id)}/{_qualified(op.name, op.bound_prefix)}"
        body = dict(op.parameters)
        return self._descriptor(
            "POST", url, op.headers, body=body, references=_merge_refs(_refs(op.id), collect_references(body))
        )

    def _bound_function(self, op: BoundFunction) -> RequestDescriptor:
        call = render_function_call(_qualified(op.name, op.bound_prefix), op.parameters, op.parameter_types)
        return self._descriptor("GET", f"{entity_path(op.entity_set, op.id)}/{call}", op.headers, references=_refs(op.id))

    def _unbound_action(self, op: UnboundAction) -> RequestDescriptor:
        body = dict(op.parameters)
        return self._descriptor("POST", op.name, op.headers, body=body, references=collect_references(body))

    def _unbound_function(self, op: UnboundFunction) -> RequestDescriptor:
        return self._descriptor("GET", render_function_call(op.name, op.parameters, op.parameter_types), op.headers)

    def _optionset(self, op: OptionSetLookup) -> RequestDescriptor:
        entity = escape_quotes(op.entity_logical_name)
        attribute = escape_quotes(op.attribute_logical_name)
        url = (
            f"EntityDefinitions(LogicalName='{entity}')/Attributes(LogicalName='{attribute}')/"
            f"{PICKLIST_METADATA_TYPE}?$select=LogicalName"
            "&$expand=OptionSet($select=Options),GlobalOptionSet($select=Options)"
        )
        return self._descriptor("GET", url, op.headers)


def _refs(key: Optional[RecordKey]) -> Tuple[PendingReference, ...]:
    return (key,) if isinstance(key, PendingReference) else ()


def _merge_refs(*groups: Tuple[PendingReference, ...]) -> Tuple[PendingReference, ...]:
    out: List[PendingReference] = []
    for group in groups:
        for ref in group:
            if ref not in out:
                out.append(ref)
    return tuple(out)


__all__ = [
    "RequestEncoder",
    "entity_path",
    "collect_references",
    "render_function_call",
    "inject_fetch_paging",
]
