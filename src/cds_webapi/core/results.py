# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Result types returned by the response decoder and the client.

- :class:`QueryPage`: one page of a retrieve-multiple or FetchXML query
- :class:`OperationOutcome`: the result of one operation, batched or not
- :class:`BatchResult`: outcomes of a batch in caller order
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterator, List, Optional

if TYPE_CHECKING:
    from ..models.paging import PagingCookie
    from ..models.record import Record
    from ..models.reference import EntityReference
    from .errors import RemoteOperationError


class OperationStatus(str, Enum):
    """Status of one operation inside a batch."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"
    NOT_EXECUTED = "not_executed"


@dataclass(frozen=True)
class OperationResult:
    """
    Request metadata shared by client results.

    :param client_request_id: Value sent in ``x-ms-client-request-id``.
    :type client_request_id: :class:`str` | None
    :param correlation_id: Value sent in ``x-ms-correlation-id``, shared by every
        HTTP request of one client call.
    :type correlation_id: :class:`str` | None
    :param service_request_id: Server-returned ``x-ms-service-request-id``.
    :type service_request_id: :class:`str` | None
    """

    client_request_id: Optional[str] = None
    correlation_id: Optional[str] = None
    service_request_id: Optional[str] = None


@dataclass(frozen=True)
class QueryPage(OperationResult):
    """
    One page of records.

    Iterating a page yields its records.

    :param records: Records on this page.
    :type records: :class:`list` of :class:`~cds_webapi.models.record.Record`
    :param next_link: ``@odata.nextLink`` for server-driven paging, if any.
    :type next_link: :class:`str` | None
    :param paging_cookie: Decoded FetchXML paging cookie, if the response carried the annotation.
    :type paging_cookie: :class:`~cds_webapi.models.paging.PagingCookie` | None
    :param more_records: ``@Microsoft.Dynamics.CRM.morerecords`` (FetchXML only).
    :type more_records: :class:`bool`
    :param total_count: ``@Microsoft.Dynamics.CRM.totalrecordcount`` when requested.
    :type total_count: :class:`int` | None
    :param page_number: 1-based page number within the paging loop.
    :type page_number: :class:`int`
    """

    records: List["Record"] = field(default_factory=list)
    next_link: Optional[str] = None
    paging_cookie: Optional["PagingCookie"] = None
    more_records: bool = False
    total_count: Optional[int] = None
    page_number: int = 1

    @property
    def has_more(self) -> bool:
        return bool(self.next_link) or self.more_records

    def __iter__(self) -> Iterator["Record"]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def __getitem__(self, index: int) -> "Record":
        return self.records[index]


@dataclass(frozen=True)
class OperationOutcome:
    """
    Outcome of one operation.

    :param index: Position of the operation in the caller's list.
    :param status: Final status.
    :param status_code: HTTP status of the operation's response part, if any.
    :param result: Decoded body: a :class:`Record`, a :class:`QueryPage`, a plain
        value for actions and functions, or ``None`` for empty responses.
    :param entity_reference: Reference of a created or updated record, from
        ``OData-EntityId`` or the body.
    :param error: Error for ``FAILED`` outcomes.
    """

    index: int
    status: OperationStatus
    status_code: Optional[int] = None
    result: Any = None
    entity_reference: Optional["EntityReference"] = None
    error: Optional["RemoteOperationError"] = None

    @property
    def succeeded(self) -> bool:
        return self.status is OperationStatus.SUCCEEDED


@dataclass(frozen=True)
class BatchResult(OperationResult):
    """Outcomes of a batch, one per submitted operation, in submission order."""

    outcomes: List[OperationOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(o.succeeded for o in self.outcomes)

    @property
    def failures(self) -> List[OperationOutcome]:
        return [o for o in self.outcomes if o.status is OperationStatus.FAILED]

    def by_status(self, status: OperationStatus) -> List[OperationOutcome]:
        return [o for o in self.outcomes if o.status is status]

    def __iter__(self) -> Iterator[OperationOutcome]:
        return iter(self.outcomes)

    def __len__(self) -> int:
        return len(self.outcomes)

    def __getitem__(self, index: int) -> OperationOutcome:
        return self.outcomes[index]


__all__ = [
    "OperationStatus",
    "OperationResult",
    "QueryPage",
    "OperationOutcome",
    "BatchResult",
]
