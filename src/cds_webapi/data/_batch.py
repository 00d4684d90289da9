# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Batch encoder: request descriptors to a ``multipart/mixed`` ``$batch`` body.

Reads go out as independent top-level parts. Every maximal run of
consecutive writes becomes one changeset, which the server applies
atomically. Writes get Content-IDs 1..N in submission order so later writes
in the same changeset can refer to records created earlier as ``$n``.

Details regarding batch requests and changesets:
https://learn.microsoft.com/en-us/power-apps/developer/data-platform/webapi/execute-batch-operations-using-web-api
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..common.constants import (
    CONTENT_TYPE_HTTP,
    CONTENT_TYPE_MULTIPART,
    HEADER_ACCEPT,
    HEADER_CONTENT_ID,
    HEADER_CONTENT_TYPE,
    HEADER_ODATA_MAX_VERSION,
    HEADER_ODATA_VERSION,
    HEADER_PREFER,
    ODATA_VERSION,
    PREFER_CONTINUE_ON_ERROR,
)
from ..core._error_codes import CONFIG_INVALID_VALUE, CONFIG_PENDING_REFERENCE
from ..core.errors import ConfigurationError
from ..models.request import RequestDescriptor

CRLF = "\r\n"

# Server-side limit on requests in one $batch
MAX_BATCH_OPERATIONS = 1000

SEGMENT_READ = "read"
SEGMENT_CHANGESET = "changeset"


def _new_boundary(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4()}"


@dataclass(frozen=True)
class BatchSegment:
    """
    One top-level part of a batch.

    :param kind: ``"read"`` (a single GET) or ``"changeset"``.
    :param indices: Positions of the segment's operations in the submitted list.
    :param requests: Descriptors of the segment, with Content-IDs for changesets.
    :param boundary: Changeset boundary; ``None`` for reads.
    """

    kind: str
    indices: Tuple[int, ...]
    requests: Tuple[RequestDescriptor, ...]
    boundary: Optional[str] = None

    @property
    def is_changeset(self) -> bool:
        return self.kind == SEGMENT_CHANGESET


@dataclass(frozen=True)
class BatchEnvelope:
    """
    A serialized batch ready to ``POST`` to ``$batch``.

    :param boundary: Outer ``batch_<uuid>`` boundary.
    :param segments: Segments in submission order.
    :param body: Serialized multipart body (CRLF line endings).
    :param headers: Headers for the outer ``$batch`` request.
    """

    boundary: str
    segments: Tuple[BatchSegment, ...]
    body: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def content_type(self) -> str:
        return f"{CONTENT_TYPE_MULTIPART}; boundary={self.boundary}"

    @property
    def operation_count(self) -> int:
        return sum(len(s.indices) for s in self.segments)

    def body_bytes(self) -> bytes:
        return self.body.encode("utf-8")


def partition(requests: Sequence[RequestDescriptor]) -> List[Tuple[str, List[int]]]:
    """Group request positions into read and changeset segments, keeping order."""
    groups: List[Tuple[str, List[int]]] = []
    for i, req in enumerate(requests):
        if req.is_write:
            if groups and groups[-1][0] == SEGMENT_CHANGESET:
                groups[-1][1].append(i)
            else:
                groups.append((SEGMENT_CHANGESET, [i]))
        else:
            groups.append((SEGMENT_READ, [i]))
    return groups


class BatchEncoder:
    """
    Builds :class:`BatchEnvelope` objects.

    :param api_path: Service root path placed before relative URLs on each
        request line, e.g. ``"/api/data/v9.1"``.
    :type api_path: :class:`str`
    :param boundary_factory: Callable taking ``"batch"`` or ``"changeset"`` and
        returning a unique boundary. Defaults to ``<prefix>_<uuid4>``.
    """

    def __init__(self, api_path: str, boundary_factory: Optional[Callable[[str], str]] = None) -> None:
        self.api_path = "/" + api_path.strip("/") if api_path.strip("/") else ""
        self._boundary = boundary_factory or _new_boundary

    def encode(self, requests: Sequence[RequestDescriptor], *, continue_on_error: bool = False) -> BatchEnvelope:
        """
        Partition, number and serialize requests.

        :param requests: Descriptors in submission order.
        :param continue_on_error: Ask the server to keep executing after a
            failed segment (``Prefer: odata.continue-on-error``).
        :raises ~cds_webapi.core.errors.ConfigurationError: If the batch is empty or
            too large, or a pending reference does not point to an earlier write
            of the same changeset.
        """
        if not requests:
            raise ConfigurationError("A batch needs at least one request", subcode=CONFIG_INVALID_VALUE)
        if len(requests) > MAX_BATCH_OPERATIONS:
            raise ConfigurationError(
                f"A batch holds at most {MAX_BATCH_OPERATIONS} requests, got {len(requests)}",
                subcode=CONFIG_INVALID_VALUE,
            )

        segments: List[BatchSegment] = []
        next_content_id = 1
        for kind, indices in partition(requests):
            if kind == SEGMENT_READ:
                req = requests[indices[0]].with_content_id(None)
                if req.references:
                    raise ConfigurationError(
                        f"Request {indices[0]} is a read and cannot use pending reference "
                        f"{req.references[0].render()}; reads run outside changesets",
                        subcode=CONFIG_PENDING_REFERENCE,
                    )
                segments.append(BatchSegment(SEGMENT_READ, tuple(indices), (req,)))
                continue

            numbered: List[RequestDescriptor] = []
            assigned: List[int] = []
            for i in indices:
                req = requests[i]
                for ref in req.references:
                    if ref.content_id not in assigned:
                        raise ConfigurationError(
                            f"Request {i} uses {ref.render()} but no earlier write in its changeset has Content-ID "
                            f"{ref.content_id}",
                            subcode=CONFIG_PENDING_REFERENCE,
                            details={"operation_index": i, "content_id": ref.content_id},
                        )
                numbered.append(req.with_content_id(next_content_id))
                assigned.append(next_content_id)
                next_content_id += 1
            segments.append(
                BatchSegment(SEGMENT_CHANGESET, tuple(indices), tuple(numbered), boundary=self._boundary("changeset"))
            )

        boundary = self._boundary("batch")
        headers = {
            HEADER_ODATA_MAX_VERSION: ODATA_VERSION,
            HEADER_ODATA_VERSION: ODATA_VERSION,
            HEADER_ACCEPT: "application/json",
            HEADER_CONTENT_TYPE: f"{CONTENT_TYPE_MULTIPART}; boundary={boundary}",
        }
        if continue_on_error:
            headers[HEADER_PREFER] = PREFER_CONTINUE_ON_ERROR
        return BatchEnvelope(
            boundary=boundary,
            segments=tuple(segments),
            body=self._serialize(boundary, segments),
            headers=headers,
        )

    # ------------------------------------------------------------------ wire
    def _request_line(self, req: RequestDescriptor) -> str:
        target = req.relative_url if req.is_pending_relative else f"{self.api_path}/{req.relative_url}"
        return f"{req.method.upper()} {target} HTTP/1.1"

    def _http_part(self, req: RequestDescriptor) -> List[str]:
        lines = [
            f"{HEADER_CONTENT_TYPE}: {CONTENT_TYPE_HTTP}",
            "Content-Transfer-Encoding: binary",
        ]
        if req.content_id is not None:
            lines.append(f"{HEADER_CONTENT_ID}: {req.content_id}")
        lines.append("")
        lines.append(self._request_line(req))
        for name, value in req.headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")
        body = req.body_text()
        lines.append(body if body is not None else "")
        return lines

    def _serialize(self, boundary: str, segments: Sequence[BatchSegment]) -> str:
        lines: List[str] = []
        for segment in segments:
            lines.append(f"--{boundary}")
            if not segment.is_changeset:
                lines.extend(self._http_part(segment.requests[0]))
                continue
            lines.append(f"{HEADER_CONTENT_TYPE}: {CONTENT_TYPE_MULTIPART}; boundary={segment.boundary}")
            lines.append("")
            for req in segment.requests:
                lines.append(f"--{segment.boundary}")
                lines.extend(self._http_part(req))
            lines.append(f"--{segment.boundary}--")
        lines.append(f"--{boundary}--")
        lines.append("")
        return CRLF.join(lines)


__all__ = [
    "BatchEncoder",
    "BatchEnvelope",
    "BatchSegment",
    "MAX_BATCH_OPERATIONS",
    "partition",
]
