# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

from __future__ import annotations

import contextvars
import dataclasses
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import requests

from .common.constants import (
    HEADER_AUTHORIZATION,
    HEADER_CLIENT_REQUEST_ID,
    HEADER_CORRELATION_ID,
    HEADER_SERVICE_REQUEST_ID,
)
from .common.literals import normalize_guid
from .core._auth import TokenSource, _AuthManager
from .core._error_codes import CONFIG_INVALID_VALUE, DECODE_UNEXPECTED_SHAPE
from .core._http import RawResponse, RequestsTransport, Transport
from .core.config import CdsConfig
from .core.errors import ConfigurationError, ProtocolDecodeError
from .core.results import BatchResult, QueryPage
from .core.telemetry import create_telemetry_manager
from .data._actions import ActionInvoker, InvocationMetadata
from .data._batch import BatchEncoder
from .data._decoder import ResponseDecoder
from .data._encoder import RequestEncoder
from .data._metadata import MetadataCache
from .models.metadata import OptionSet
from .models.operations import (
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
from .models.query import Query
from .models.record import Record
from .models.request import RequestDescriptor, merge_headers

_CORRELATION_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("cds_webapi_correlation_id", default=None)


class CdsClient:
    """
    High-level client for the CDS Web API.

    The client wires the protocol layer together: operations are encoded by
    :class:`~cds_webapi.data._encoder.RequestEncoder`, sent through a
    :class:`~cds_webapi.core._http.Transport` and decoded by
    :class:`~cds_webapi.data._decoder.ResponseDecoder`.

    **Context Manager Support (Recommended)**:
        Using the client as a context manager enables connection pooling and
        releases the session on exit::

            with CdsClient(base_url, credential) as client:
                ref = client.save("accounts", {"name": "Contoso"})

    :param base_url: Organization URL, for example ``"https://org.crm.dynamics.com"``.
        Trailing slash is automatically removed.
    :type base_url: :class:`str`
    :param credential: Bearer token source: an azure-core ``TokenCredential``, a
        callable taking a scope and returning a token, or a stored credential
        carrying a token. ``None`` sends no ``Authorization`` header (for
        transports that authenticate on their own).
    :param config: Optional configuration. Defaults come from
        :meth:`~cds_webapi.core.config.CdsConfig.from_env`.
    :type config: ~cds_webapi.core.config.CdsConfig or None
    :param transport: Optional transport. Defaults to a
        :class:`~cds_webapi.core._http.RequestsTransport`.
    :param metadata_cache: Optional cache for option sets. Nothing is cached without one.
    :type metadata_cache: ~cds_webapi.data._metadata.MetadataCache or None

    :raises ~cds_webapi.core.errors.ConfigurationError: If ``base_url`` is missing.

    Example::

        from azure.identity import InteractiveBrowserCredential
        from cds_webapi import CdsClient

        with CdsClient("https://org.crm.dynamics.com", InteractiveBrowserCredential()) as client:
            q = client.query("account", "accounts").select("name").filter_eq("statecode", 0)
            for record in client.fetch(q):
                print(record["name"], record.formatted("statecode"))
    """

    def __init__(
        self,
        base_url: str,
        credential: Optional[TokenSource] = None,
        config: Optional[CdsConfig] = None,
        transport: Optional[Transport] = None,
        metadata_cache: Optional[MetadataCache] = None,
    ) -> None:
        self._base_url = (base_url or "").strip().rstrip("/")
        if not self._base_url:
            raise ConfigurationError("base_url is required.", subcode=CONFIG_INVALID_VALUE)
        self.auth = _AuthManager(credential) if credential is not None else None
        self._config = config or CdsConfig.from_env()
        self._transport: Optional[Transport] = transport
        self._owns_transport = transport is None
        self._session: Optional[requests.Session] = None
        self.metadata_cache = metadata_cache

        self.encoder = RequestEncoder()
        self.decoder = ResponseDecoder(language_code=self._config.language_code)
        self.batch_encoder = BatchEncoder(self._config.api_path)
        self.invoker = ActionInvoker()
        self._telemetry = create_telemetry_manager(self._config.telemetry)

    # ------------------------------------------------------------------ lifecycle
    def __enter__(self) -> "CdsClient":
        if self._owns_transport and self._session is None:
            self._session = requests.Session()
            self._transport = None
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Close the pooled session, if any. Safe to call multiple times."""
        if self._owns_transport and isinstance(self._transport, RequestsTransport):
            self._transport.close()
            self._transport = None
        if self._session is not None:
            self._session.close()
            self._session = None

    @property
    def config(self) -> CdsConfig:
        return self._config

    @property
    def service_root(self) -> str:
        """``{base_url}/api/data/{version}``."""
        return f"{self._base_url}{self._config.api_path}"

    def _get_transport(self) -> Transport:
        if self._transport is None:
            self._transport = RequestsTransport(
                retries=self._config.http_retries,
                backoff=self._config.http_backoff,
                timeout=self._config.http_timeout,
                session=self._session,
            )
        return self._transport

    @contextmanager
    def _call_scope(self) -> Iterator[str]:
        """Share one correlation id across every HTTP request of a client call."""
        current = _CORRELATION_ID.get()
        if current is not None:
            yield current
            return
        token = _CORRELATION_ID.set(str(uuid.uuid4()))
        try:
            yield _CORRELATION_ID.get()  # type: ignore[misc]
        finally:
            _CORRELATION_ID.reset(token)

    # ------------------------------------------------------------------ wire
    def _absolute(self, url: str) -> str:
        if url.lower().startswith(("http://", "https://")):
            return url
        return f"{self.service_root}/{url.lstrip('/')}"

    def _send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Optional[bytes],
        *,
        operation: str,
        entity_set: Optional[str] = None,
        correlation_id: Optional[str] = None,
        client_request_id: Optional[str] = None,
    ) -> RawResponse:
        if correlation_id is None:
            with self._call_scope() as scoped:
                return self._send(
                    method,
                    url,
                    headers,
                    body,
                    operation=operation,
                    entity_set=entity_set,
                    correlation_id=scoped,
                    client_request_id=client_request_id,
                )
        client_request_id = client_request_id or str(uuid.uuid4())
        full_url = self._absolute(url)
        extra = {
            HEADER_CLIENT_REQUEST_ID: client_request_id,
            HEADER_CORRELATION_ID: correlation_id,
        }
        if self.auth is not None:
            extra[HEADER_AUTHORIZATION] = self.auth.authorization(self._base_url)
        extra.update(self._telemetry.get_additional_headers())
        all_headers = merge_headers(headers, extra)
        with self._telemetry.trace_request(
            operation, method, full_url, client_request_id, correlation_id, entity_set
        ) as ctx:
            raw = self._get_transport().send(method, full_url, all_headers, body)
            self._telemetry.record_response(ctx, raw.status, raw.header(HEADER_SERVICE_REQUEST_ID))
        return raw

    def _send_descriptor(
        self,
        descriptor: RequestDescriptor,
        operation: str,
        entity_set: Optional[str] = None,
        correlation_id: Optional[str] = None,
        client_request_id: Optional[str] = None,
    ) -> RawResponse:
        if descriptor.references:
            raise ConfigurationError(
                f"Pending reference {descriptor.references[0].render()} can only be used inside a batch",
                subcode=CONFIG_INVALID_VALUE,
            )
        return self._send(
            descriptor.method,
            descriptor.relative_url,
            descriptor.headers,
            descriptor.body_bytes(),
            operation=operation,
            entity_set=entity_set,
            correlation_id=correlation_id,
            client_request_id=client_request_id,
        )

    def execute(self, operation: Operation, *, page_number: int = 1, correlation_id: Optional[str] = None) -> Any:
        """
        Encode, send and decode one operation.

        :param page_number: Page number reported on a decoded :class:`QueryPage`.
        :param correlation_id: Correlation id to send; a new one is used when omitted.
        :return: A :class:`~cds_webapi.models.record.Record`, a
            :class:`~cds_webapi.core.results.QueryPage`, an
            :class:`~cds_webapi.models.metadata.OptionSet`, the parsed JSON of an
            action or function, or ``None`` for empty responses.
        :raises ~cds_webapi.core.errors.RemoteOperationError: If the server rejects the request.
        """
        if correlation_id is None:
            with self._call_scope() as scoped:
                return self.execute(operation, page_number=page_number, correlation_id=scoped)
        descriptor = self.encoder.encode(operation)
        client_request_id = str(uuid.uuid4())
        raw = self._send_descriptor(
            descriptor, operation.kind, _entity_set_of(operation), correlation_id, client_request_id=client_request_id
        )
        result = self.decoder.decode(raw, operation, page_number=page_number)
        if isinstance(result, QueryPage):
            result = _with_request_ids(result, raw, client_request_id, correlation_id)
        return result

    # ------------------------------------------------------------------ queries
    def query(self, entity_logical_name: str, entity_set_path: Optional[str] = None) -> Query:
        """Start a :class:`~cds_webapi.models.query.Query` for an entity."""
        q = Query(entity_logical_name)
        return q.path(entity_set_path) if entity_set_path is not None else q

    def fetch_pages(self, query: Query, page_size: Optional[int] = None) -> Iterator[QueryPage]:
        """
        Yield pages of a query, following ``@odata.nextLink``.

        :param query: Query with an entity set path.
        :param page_size: ``Prefer: odata.maxpagesize`` value. Ignored when the
            query sets ``top``, which disables server-driven paging.
        """
        operation = RetrieveMultiple(query, max_page_size=None if query.row_limit is not None else page_size)
        descriptor = self.encoder.encode(operation)
        entity_set = query.entity_set_path
        correlation_id = _CORRELATION_ID.get() or str(uuid.uuid4())
        url: Optional[str] = descriptor.relative_url
        page_number = 1
        while url:
            client_request_id = str(uuid.uuid4())
            raw = self._send(
                "GET",
                url,
                descriptor.headers,
                None,
                operation=operation.kind,
                entity_set=entity_set,
                correlation_id=correlation_id,
                client_request_id=client_request_id,
            )
            page = _with_request_ids(
                self.decoder.decode(raw, operation, page_number=page_number), raw, client_request_id, correlation_id
            )
            yield page
            url = page.next_link
            page_number += 1

    def fetch(self, query: Query, max_row_count: Optional[int] = None) -> List[Record]:
        """
        Fetch up to ``max_row_count`` records (default ``config.max_records``).

        :rtype: :class:`list` of :class:`~cds_webapi.models.record.Record`
        """
        limit = max_row_count if max_row_count is not None else self._config.max_records
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ConfigurationError("max_row_count must be a positive integer", subcode=CONFIG_INVALID_VALUE)
        records: List[Record] = []
        for page in self.fetch_pages(query, page_size=limit):
            records.extend(page.records)
            if len(records) >= limit:
                break
        return records[:limit]

    def fetch_all(self, query: Query, page_size: Optional[int] = None) -> List[Record]:
        """Fetch every record of a query, across all pages."""
        records: List[Record] = []
        for page in self.fetch_pages(query, page_size=page_size):
            records.extend(page.records)
        return records

    def fetch_xml_pages(self, entity_set: str, fetch_xml: str, page_size: Optional[int] = None) -> Iterator[QueryPage]:
        """
        Yield pages of a FetchXML query using the paging cookie.

        ``@Microsoft.Dynamics.CRM.morerecords`` decides when to stop. When the
        server sends no usable cookie, the next page number is derived from the
        current one and the request goes out without a cookie.
        """
        correlation_id = _CORRELATION_ID.get() or str(uuid.uuid4())
        page_number = 1
        cookie: Optional[str] = None
        while True:
            operation = FetchXmlQuery(
                entity_set,
                fetch_xml,
                page_number=page_number if (page_size is not None or page_number > 1) else None,
                paging_cookie=cookie,
                page_size=page_size,
            )
            page = self.execute(operation, page_number=page_number, correlation_id=correlation_id)
            yield page
            if not page.more_records:
                return
            paging = page.paging_cookie
            if paging is None:
                page_number += 1
                cookie = None
            else:
                page_number = paging.next_page_number
                cookie = paging.cookie or None

    def fetch_xml(self, entity_set: str, fetch_xml: str, page_size: Optional[int] = None) -> List[Record]:
        """Fetch every record of a FetchXML query."""
        records: List[Record] = []
        for page in self.fetch_xml_pages(entity_set, fetch_xml, page_size=page_size):
            records.extend(page.records)
        return records

    # ------------------------------------------------------------------ records
    def retrieve(self, entity_set: str, record_id: str, *, select: Optional[Sequence[str]] = None, query: Optional[Query] = None) -> Record:
        """
        Retrieve one record.

        :param select: Attribute names for ``$select``.
        :param query: Query contributing ``$select`` and ``$expand``.
        """
        q = query
        if select:
            q = (q or Query()).select(*select)
        return self.execute(Retrieve(entity_set, record_id, query=q))

    def save(self, entity_set: str, data: Dict[str, Any], record_id: Optional[str] = None) -> str:
        """
        Create (no id) or update (id) a record.

        :return: Id of the saved record, lowercase without braces.
        :raises ~cds_webapi.core.errors.RemoteOperationError: If the server rejects the request.
        :raises ~cds_webapi.core.errors.ProtocolDecodeError: If a create response does not identify the new record.
        """
        operation = Save(entity_set, data, id=record_id)
        descriptor = self.encoder.encode(operation)
        raw = self._send_descriptor(descriptor, operation.kind, entity_set)
        self.decoder.check(raw.status, raw.headers, raw.body)
        if record_id is not None:
            return normalize_guid(record_id)
        reference = self.decoder.entity_reference(raw.headers, self.decoder.parse_json(raw.body))
        if reference is None:
            raise ProtocolDecodeError(
                f"Create in '{entity_set}' succeeded without OData-EntityId or @odata.id",
                subcode=DECODE_UNEXPECTED_SHAPE,
                details={"status": raw.status},
            )
        return reference.id

    def delete(self, entity_set: str, record_id: str) -> None:
        self.execute(Delete(entity_set, record_id))

    # ------------------------------------------------------------------ metadata
    def optionset(self, entity_logical_name: str, attribute_logical_name: str) -> OptionSet:
        """
        Options of a picklist attribute, memoized in ``metadata_cache`` when one is set.

        :raises ~cds_webapi.core.errors.ProtocolDecodeError: If the attribute has no option set.
        """
        if self.metadata_cache is not None:
            cached = self.metadata_cache.get_optionset(entity_logical_name, attribute_logical_name)
            if cached is not None:
                return cached
        result = self.execute(OptionSetLookup(entity_logical_name, attribute_logical_name))
        if self.metadata_cache is not None:
            self.metadata_cache.put_optionset(result)
        return result

    # ------------------------------------------------------------------ actions
    def bound_action(
        self,
        entity_set: str,
        record_id: str,
        name: str,
        parameters: Optional[Dict[str, Any]] = None,
        bound_prefix: Optional[str] = None,
    ) -> Any:
        return self.execute(BoundAction(entity_set, record_id, name, dict(parameters or {}), bound_prefix))

    def bound_function(
        self,
        entity_set: str,
        record_id: str,
        name: str,
        parameters: Optional[Dict[str, Any]] = None,
        bound_prefix: Optional[str] = None,
    ) -> Any:
        return self.execute(BoundFunction(entity_set, record_id, name, dict(parameters or {}), bound_prefix))

    def unbound_action(self, name: str, parameters: Optional[Dict[str, Any]] = None) -> Any:
        return self.execute(UnboundAction(name, dict(parameters or {})))

    def unbound_function(self, name: str, parameters: Optional[Dict[str, Any]] = None) -> Any:
        return self.execute(UnboundFunction(name, dict(parameters or {})))

    def invoke(
        self,
        metadata: InvocationMetadata,
        *args: Any,
        entity_set: Optional[str] = None,
        record_id: Optional[str] = None,
        **parameters: Any,
    ) -> Any:
        """
        Call an action or function described by metadata.

        Positional arguments bind in declared order; keyword arguments by name.

        :raises ~cds_webapi.core.errors.ParameterMismatchError: If the arguments do
            not match the declared parameters.
        """
        operation = self.invoker.invoke(metadata, *args, entity_set=entity_set, record_id=record_id, parameters=parameters)
        return self.execute(operation)

    def who_am_i(self) -> Dict[str, Any]:
        """Return the ``WhoAmI`` response (``UserId``, ``BusinessUnitId``, ``OrganizationId``)."""
        result = self.unbound_function("WhoAmI")
        return {k: v for k, v in (result or {}).items() if not k.startswith("@")}

    # ------------------------------------------------------------------ batch
    def batch(self, continue_on_error: bool = False) -> "BatchBuilder":
        """Start a batch; see :class:`BatchBuilder`."""
        return BatchBuilder(self, continue_on_error=continue_on_error)

    def _execute_batch(self, operations: Sequence[Operation], descriptors: Sequence[RequestDescriptor], continue_on_error: bool) -> BatchResult:
        envelope = self.batch_encoder.encode(descriptors, continue_on_error=continue_on_error)
        client_request_id = str(uuid.uuid4())
        with self._call_scope() as correlation_id:
            raw = self._send(
                "POST",
                "$batch",
                envelope.headers,
                envelope.body_bytes(),
                operation="batch",
                client_request_id=client_request_id,
            )
            result = self.decoder.batch(raw, envelope, operations)
        return dataclasses.replace(result, client_request_id=client_request_id, correlation_id=correlation_id)

    # ------------------------------------------------------------------ pandas
    def fetch_dataframe(self, query: Query, page_size: Optional[int] = None, include_formatted: bool = False):
        """
        Fetch every record of a query into a :class:`pandas.DataFrame`.

        :param include_formatted: Add ``<column>_formatted`` columns with the server-formatted values.
        :rtype: ~pandas.DataFrame
        """
        from .utils._pandas import records_to_dataframe

        return records_to_dataframe(self.fetch_all(query, page_size=page_size), include_formatted=include_formatted)

    def save_dataframe(self, entity_set: str, df, id_column: Optional[str] = None, na_as_null: bool = False) -> BatchResult:
        """
        Save every row of a DataFrame in one batch.

        Rows with a value in ``id_column`` are updated, the others created.

        :param na_as_null: Send missing values as ``null`` instead of leaving them out.
        :rtype: ~cds_webapi.core.results.BatchResult
        """
        from .utils._pandas import dataframe_to_records

        builder = self.batch()
        for row in dataframe_to_records(df, na_as_null=na_as_null):
            record_id = row.pop(id_column, None) if id_column else None
            builder.save(entity_set, row, record_id=record_id)
        return builder.execute()


class BatchBuilder:
    """
    Collects operations for one ``$batch`` request.

    Consecutive writes share a changeset; reads run on their own. ``save``
    returns a :class:`~cds_webapi.models.operations.PendingReference` that later
    writes of the same changeset can use in place of the new record's id.

    Example::

        batch = client.batch()
        account = batch.save("accounts", {"name": "Contoso"})
        batch.save("contacts", {"lastname": "Smith", "parentcustomerid_account@odata.bind": account})
        result = batch.execute()
        result.succeeded
    """

    def __init__(self, client: CdsClient, continue_on_error: bool = False) -> None:
        self._client = client
        self.continue_on_error = continue_on_error
        self._items: List[Tuple[Operation, RequestDescriptor]] = []

    def __len__(self) -> int:
        return len(self._items)

    def add(self, operation: Operation) -> int:
        """Queue an operation; returns its index in the batch result."""
        descriptor = self._client.encoder.encode(operation)
        self._items.append((operation, descriptor))
        return len(self._items) - 1

    def _next_content_id(self) -> int:
        return sum(1 for _, d in self._items if d.is_write) + 1

    def retrieve(self, entity_set: str, record_id: str, *, select: Optional[Sequence[str]] = None) -> int:
        query = Query().select(*select) if select else None
        return self.add(Retrieve(entity_set, record_id, query=query))

    def fetch(self, query: Query, page_size: Optional[int] = None) -> int:
        return self.add(RetrieveMultiple(query, max_page_size=page_size))

    def save(self, entity_set: str, data: Dict[str, Any], record_id: Optional[RecordKey] = None) -> PendingReference:
        """Queue a create or update; returns the reference usable later in the same changeset."""
        content_id = self._next_content_id()
        self.add(Save(entity_set, data, id=record_id))
        return PendingReference(content_id)

    def delete(self, entity_set: str, record_id: RecordKey) -> int:
        return self.add(Delete(entity_set, record_id))

    def execute(self) -> BatchResult:
        """
        Send the batch.

        :raises ~cds_webapi.core.errors.ConfigurationError: If the batch is empty or a
            pending reference is misplaced.
        :raises ~cds_webapi.core.errors.RemoteOperationError: If the whole batch is rejected.
        """
        operations = [op for op, _ in self._items]
        descriptors = [d for _, d in self._items]
        return self._client._execute_batch(operations, descriptors, self.continue_on_error)


def _with_request_ids(page: QueryPage, raw: RawResponse, client_request_id: str, correlation_id: str) -> QueryPage:
    return dataclasses.replace(
        page,
        client_request_id=client_request_id,
        correlation_id=correlation_id,
        service_request_id=raw.header(HEADER_SERVICE_REQUEST_ID),
    )


def _entity_set_of(operation: Operation) -> Optional[str]:
    if isinstance(operation, RetrieveMultiple):
        return operation.query.entity_set_path
    return getattr(operation, "entity_set", None)


__all__ = ["CdsClient", "BatchBuilder"]
