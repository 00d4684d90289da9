# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Response decoder: raw responses to records, pages, references and outcomes.

Batch responses are split with the standard-library MIME parser and matched
back to the segments of the :class:`~cds_webapi.data._batch.BatchEnvelope`
that produced them, position by position.
"""

from __future__ import annotations

import json
import logging
from email.message import Message
from email.parser import Parser
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..common.constants import (
    ANNOTATION_EDIT_LINK,
    ANNOTATION_ID,
    ANNOTATION_MORE_RECORDS,
    ANNOTATION_NEXT_LINK,
    ANNOTATION_PAGING_COOKIE,
    ANNOTATION_TOTAL_COUNT,
    CONTENT_TYPE_MULTIPART,
    HEADER_CONTENT_ID,
    HEADER_CONTENT_TYPE,
    HEADER_ODATA_ENTITY_ID,
    HEADER_SERVICE_REQUEST_ID,
)
from ..core._error_codes import (
    DECODE_INVALID_HTTP_PART,
    DECODE_INVALID_JSON,
    DECODE_INVALID_MULTIPART,
    DECODE_MISSING_OPTIONSET,
    DECODE_UNEXPECTED_SHAPE,
)
from ..core._http import RawResponse
from ..core.errors import ProtocolDecodeError, RemoteOperationError
from ..core.results import BatchResult, OperationOutcome, OperationStatus, QueryPage
from ..models.metadata import OptionSet, OptionSetEntry
from ..models.operations import (
    Delete,
    FetchXmlQuery,
    Operation,
    OptionSetLookup,
    Retrieve,
    RetrieveMultiple,
    Save,
)
from ..models.paging import decode_paging_cookie
from ..models.record import Record
from ..models.reference import EntityReference, parse_entity_reference
from ._batch import BatchEnvelope, BatchSegment

_logger = logging.getLogger(__name__)

Body = Union[bytes, str, None]


def _text(body: Body) -> str:
    if body is None:
        return ""
    if isinstance(body, bytes):
        return body.decode("utf-8", errors="replace")
    return body


def _lower(headers: Mapping[str, str]) -> Dict[str, str]:
    return {str(k).lower(): v for k, v in (headers or {}).items()}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


class _HttpPart:
    """A response embedded in a batch part."""

    def __init__(self, status: int, headers: Dict[str, str], body: str, content_id: Optional[int]) -> None:
        self.status = status
        self.headers = headers
        self.body = body
        self.content_id = content_id

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def _content_id(part: Message) -> Optional[int]:
    raw = part.get(HEADER_CONTENT_ID)
    if raw is None:
        return None
    try:
        return int(str(raw).strip().strip("<>"))
    except ValueError:
        return None


def parse_http_part(part: Message) -> _HttpPart:
    """Parse an ``application/http`` MIME part into status, headers and body."""
    payload = part.get_payload()
    if not isinstance(payload, str):
        raise ProtocolDecodeError("Batch part is not an HTTP message", subcode=DECODE_INVALID_HTTP_PART)
    text = payload.replace("\r\n", "\n").lstrip("\n")
    head, _, body = text.partition("\n\n")
    lines = head.split("\n")
    status_line = lines[0].split(" ", 2)
    if len(status_line) < 2 or not status_line[0].upper().startswith("HTTP/"):
        raise ProtocolDecodeError(
            f"Invalid status line in batch part: {lines[0][:80]!r}", subcode=DECODE_INVALID_HTTP_PART
        )
    try:
        status = int(status_line[1])
    except ValueError as e:
        raise ProtocolDecodeError(
            f"Invalid status code in batch part: {status_line[1]!r}", subcode=DECODE_INVALID_HTTP_PART
        ) from e
    headers: Dict[str, str] = {}
    for line in lines[1:]:
        name, sep, value = line.partition(":")
        if sep:
            headers[name.strip()] = value.strip()
    return _HttpPart(status, headers, body.strip(), _content_id(part))


def split_multipart(body: Body, content_type: str) -> List[Message]:
    """Split a ``multipart/mixed`` body into its top-level MIME parts."""
    if not content_type or CONTENT_TYPE_MULTIPART not in content_type.lower():
        raise ProtocolDecodeError(
            f"Expected a multipart/mixed response, got {content_type!r}", subcode=DECODE_INVALID_MULTIPART
        )
    document = f"{HEADER_CONTENT_TYPE}: {content_type}\r\nMIME-Version: 1.0\r\n\r\n{_text(body)}"
    message = Parser().parsestr(document)
    parts = message.get_payload()
    if not message.is_multipart() or not isinstance(parts, list):
        raise ProtocolDecodeError("Batch response has no parts", subcode=DECODE_INVALID_MULTIPART)
    return parts


class ResponseDecoder:
    """
    Decodes raw responses.

    :param language_code: LCID used to pick option-set labels when the server
        sends no ``UserLocalizedLabel``. Default is 1033.
    :type language_code: :class:`int`
    """

    def __init__(self, language_code: int = 1033) -> None:
        self.language_code = language_code

    # ------------------------------------------------------------------ basics
    def parse_json(self, body: Body) -> Any:
        """Parse a JSON body; an empty body gives ``None``."""
        text = _text(body)
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except ValueError as e:
            raise ProtocolDecodeError(
                f"Response body is not valid JSON: {e}",
                subcode=DECODE_INVALID_JSON,
                details={"body_excerpt": text[:200]},
            ) from e

    def check(self, status: int, headers: Mapping[str, str], body: Body, *, operation_index: Optional[int] = None) -> None:
        """Raise :class:`RemoteOperationError` for a non-2xx status."""
        if not 200 <= status < 300:
            raise RemoteOperationError.from_response(status, headers, body, operation_index=operation_index)

    def entity_reference(self, headers: Mapping[str, str], payload: Any = None) -> Optional[EntityReference]:
        """
        Reference of the record a response is about.

        ``OData-EntityId`` wins; ``@odata.id`` and ``@odata.editLink`` in the body
        are the fallback.
        """
        ref = parse_entity_reference(_lower(headers).get(HEADER_ODATA_ENTITY_ID.lower()))
        if ref is not None:
            return ref
        if isinstance(payload, dict):
            for key in (ANNOTATION_ID, ANNOTATION_EDIT_LINK):
                ref = parse_entity_reference(payload.get(key))
                if ref is not None:
                    return ref
        return None

    def record(self, payload: Any, entity_set: Optional[str] = None) -> Record:
        if not isinstance(payload, dict):
            raise ProtocolDecodeError("Expected an entity object", subcode=DECODE_UNEXPECTED_SHAPE)
        return Record.from_api_response(payload, entity_set=entity_set)

    def page(self, payload: Any, *, entity_set: Optional[str] = None, page_number: int = 1) -> QueryPage:
        """
        Decode a collection response into a :class:`QueryPage`.

        The paging cookie annotation is decoded when present; a missing or
        unusable cookie falls back to ``page_number``.
        """
        if not isinstance(payload, dict) or not isinstance(payload.get("value"), list):
            raise ProtocolDecodeError("Expected a collection with a 'value' array", subcode=DECODE_UNEXPECTED_SHAPE)
        records = [Record.from_api_response(item, entity_set=entity_set) for item in payload["value"] if isinstance(item, dict)]
        cookie = None
        if ANNOTATION_PAGING_COOKIE in payload or ANNOTATION_MORE_RECORDS in payload:
            cookie = decode_paging_cookie(payload.get(ANNOTATION_PAGING_COOKIE), page_number)
            if cookie.is_empty and _as_bool(payload.get(ANNOTATION_MORE_RECORDS)):
                _logger.debug("More records reported without a usable paging cookie on page %d", page_number)
        total = payload.get(ANNOTATION_TOTAL_COUNT)
        return QueryPage(
            records=records,
            next_link=payload.get(ANNOTATION_NEXT_LINK),
            paging_cookie=cookie,
            more_records=_as_bool(payload.get(ANNOTATION_MORE_RECORDS)),
            total_count=total if isinstance(total, int) and total >= 0 else None,
            page_number=page_number,
        )

    def optionset(self, payload: Any, entity_logical_name: str = "", attribute_logical_name: str = "") -> OptionSet:
        """
        Decode a picklist attribute metadata response.

        The attribute's own ``OptionSet`` is used when it has options, otherwise
        the ``GlobalOptionSet``.

        :raises ~cds_webapi.core.errors.ProtocolDecodeError: If neither carries options.
        """
        is_global = False
        options = None
        if isinstance(payload, dict):
            local = payload.get("OptionSet")
            if isinstance(local, dict) and isinstance(local.get("Options"), list):
                options = local["Options"]
            else:
                shared = payload.get("GlobalOptionSet")
                if isinstance(shared, dict) and isinstance(shared.get("Options"), list):
                    options = shared["Options"]
                    is_global = True
        if options is None:
            raise ProtocolDecodeError(
                f"No option set found for '{entity_logical_name}.{attribute_logical_name}'",
                subcode=DECODE_MISSING_OPTIONSET,
                details={"entity": entity_logical_name, "attribute": attribute_logical_name},
            )
        entries: List[OptionSetEntry] = []
        for opt in options:
            if not isinstance(opt, dict) or not isinstance(opt.get("Value"), int):
                continue
            entries.append(OptionSetEntry(label=self._label(opt.get("Label")), value=opt["Value"]))
        return OptionSet(
            entity_logical_name=entity_logical_name,
            attribute_logical_name=attribute_logical_name or str(payload.get("LogicalName") or ""),
            options=tuple(entries),
            is_global=is_global,
        )

    def _label(self, label: Any) -> str:
        if not isinstance(label, dict):
            return ""
        user = label.get("UserLocalizedLabel")
        if isinstance(user, dict) and isinstance(user.get("Label"), str):
            return user["Label"]
        localized = [loc for loc in label.get("LocalizedLabels") or [] if isinstance(loc, dict)]
        for loc in localized:
            if loc.get("LanguageCode") == self.language_code and isinstance(loc.get("Label"), str):
                return loc["Label"]
        for loc in localized:
            if isinstance(loc.get("Label"), str):
                return loc["Label"]
        return ""

    # ------------------------------------------------------------------ typed
    def result_for(self, operation: Optional[Operation], payload: Any, *, page_number: int = 1) -> Any:
        """Shape a parsed payload according to the operation that produced it."""
        if payload is None:
            return None
        if isinstance(operation, Retrieve):
            return self.record(payload, operation.entity_set)
        if isinstance(operation, RetrieveMultiple):
            return self.page(payload, entity_set=operation.query.entity_set_path, page_number=page_number)
        if isinstance(operation, FetchXmlQuery):
            return self.page(payload, entity_set=operation.entity_set, page_number=operation.page_number or page_number)
        if isinstance(operation, Save):
            return self.record(payload, operation.entity_set)
        if isinstance(operation, OptionSetLookup):
            return self.optionset(payload, operation.entity_logical_name, operation.attribute_logical_name)
        return payload

    def decode(self, raw: RawResponse, operation: Optional[Operation] = None, *, page_number: int = 1) -> Any:
        """
        Decode a single (non-batch) response.

        :return: A typed result for ``operation``, the parsed JSON when no
            operation is given, or ``None`` for empty 2xx responses.
        :raises ~cds_webapi.core.errors.RemoteOperationError: For non-2xx responses.
        :raises ~cds_webapi.core.errors.ProtocolDecodeError: For malformed bodies.
        """
        self.check(raw.status, raw.headers, raw.body)
        return self.result_for(operation, self.parse_json(raw.body), page_number=page_number)

    def outcome(self, index: int, operation: Optional[Operation], raw: RawResponse) -> OperationOutcome:
        """Decode a response into an :class:`OperationOutcome`; remote errors become ``FAILED``."""
        return self._outcome(index, operation, raw.status, raw.headers, raw.body)

    def _outcome(
        self,
        index: int,
        operation: Optional[Operation],
        status: int,
        headers: Mapping[str, str],
        body: Body,
    ) -> OperationOutcome:
        if not 200 <= status < 300:
            return OperationOutcome(
                index=index,
                status=OperationStatus.FAILED,
                status_code=status,
                error=RemoteOperationError.from_response(status, headers, body, operation_index=index),
            )
        payload = self.parse_json(body)
        reference = None
        if isinstance(operation, (Save, Delete)) or operation is None:
            reference = self.entity_reference(headers, payload)
        return OperationOutcome(
            index=index,
            status=OperationStatus.SUCCEEDED,
            status_code=status,
            result=self.result_for(operation, payload),
            entity_reference=reference,
        )

    # ------------------------------------------------------------------ batch
    def batch(
        self,
        raw: RawResponse,
        envelope: BatchEnvelope,
        operations: Optional[Sequence[Operation]] = None,
    ) -> BatchResult:
        """
        Decode a ``$batch`` response against the envelope that produced it.

        Parts are matched to segments by position. Within a changeset, parts
        are matched to members by Content-ID, falling back to position. When a
        changeset fails, the failing member is ``FAILED`` and its siblings are
        ``ROLLED_BACK``. Segments the server never answered are ``NOT_EXECUTED``.

        :raises ~cds_webapi.core.errors.RemoteOperationError: If the batch request
            itself was rejected.
        """
        self.check(raw.status, raw.headers, raw.body)
        parts = split_multipart(raw.body, raw.header(HEADER_CONTENT_TYPE) or "")
        ops: Sequence[Optional[Operation]] = operations if operations is not None else [None] * envelope.operation_count
        if len(ops) != envelope.operation_count:
            raise ProtocolDecodeError(
                f"Got {len(ops)} operations for a batch of {envelope.operation_count}",
                subcode=DECODE_UNEXPECTED_SHAPE,
            )

        outcomes: Dict[int, OperationOutcome] = {}
        for position, segment in enumerate(envelope.segments):
            if position >= len(parts):
                for i in segment.indices:
                    outcomes[i] = OperationOutcome(index=i, status=OperationStatus.NOT_EXECUTED)
                continue
            part = parts[position]
            if segment.is_changeset:
                outcomes.update(self._changeset(segment, part, ops))
            else:
                i = segment.indices[0]
                http = parse_http_part(part)
                outcomes[i] = self._outcome(i, ops[i], http.status, http.headers, http.body)

        skipped = sum(1 for o in outcomes.values() if o.status is OperationStatus.NOT_EXECUTED)
        if skipped:
            _logger.warning("Batch stopped early; %d operation(s) not executed", skipped)
        return BatchResult(
            outcomes=[outcomes[i] for i in range(envelope.operation_count)],
            service_request_id=raw.header(HEADER_SERVICE_REQUEST_ID),
        )

    def _changeset(
        self,
        segment: BatchSegment,
        part: Message,
        ops: Sequence[Optional[Operation]],
    ) -> Dict[int, OperationOutcome]:
        members: List[Tuple[int, Optional[int]]] = [
            (i, req.content_id) for i, req in zip(segment.indices, segment.requests)
        ]
        if part.is_multipart():
            responses = [parse_http_part(p) for p in part.get_payload()]
        else:
            responses = [parse_http_part(part)]

        if len(responses) == 1 and not responses[0].ok:
            return self._failed_changeset(members, responses[0], ops)

        matched: Dict[int, _HttpPart] = {}
        by_content_id = {r.content_id: r for r in responses if r.content_id is not None}
        for position, (i, content_id) in enumerate(members):
            response = by_content_id.get(content_id) if content_id is not None else None
            if response is None and position < len(responses):
                response = responses[position]
            if response is not None:
                matched[i] = response

        failed = next((i for i, _ in members if i in matched and not matched[i].ok), None)
        if failed is not None:
            return self._failed_changeset(members, matched[failed], ops, failed_index=failed)

        out: Dict[int, OperationOutcome] = {}
        for i, _ in members:
            r = matched.get(i)
            if r is None:
                raise ProtocolDecodeError(
                    f"Changeset response has no part for operation {i}", subcode=DECODE_INVALID_MULTIPART
                )
            out[i] = self._outcome(i, ops[i], r.status, r.headers, r.body)
        return out

    def _failed_changeset(
        self,
        members: List[Tuple[int, Optional[int]]],
        response: _HttpPart,
        ops: Sequence[Optional[Operation]],
        failed_index: Optional[int] = None,
    ) -> Dict[int, OperationOutcome]:
        if response.ok:
            raise ProtocolDecodeError("Changeset answered with a single successful part", subcode=DECODE_INVALID_MULTIPART)
        if failed_index is None:
            failed_index = next((i for i, cid in members if cid is not None and cid == response.content_id), members[0][0])
        out: Dict[int, OperationOutcome] = {}
        for i, _ in members:
            if i == failed_index:
                out[i] = self._outcome(i, ops[i], response.status, response.headers, response.body)
            else:
                out[i] = OperationOutcome(index=i, status=OperationStatus.ROLLED_BACK)
        return out


__all__ = ["ResponseDecoder", "parse_http_part", "split_multipart"]
