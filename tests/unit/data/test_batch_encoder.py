# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Unit tests for the $batch encoder."""

import itertools

import pytest

from cds_webapi.core._error_codes import CONFIG_INVALID_VALUE, CONFIG_PENDING_REFERENCE
from cds_webapi.core.errors import ConfigurationError
from cds_webapi.data._batch import MAX_BATCH_OPERATIONS, BatchEncoder, partition
from cds_webapi.data._encoder import RequestEncoder
from cds_webapi.models.operations import Delete, PendingReference, Retrieve, Save
from cds_webapi.models.request import RequestDescriptor

ID = "11111111-2222-3333-4444-555555555555"
CRLF = "\r\n"


def fixed_boundaries(prefix):
    return f"{prefix}_x"


def counting_boundaries():
    counter = itertools.count(1)
    return lambda prefix: f"{prefix}_{next(counter)}"


@pytest.fixture
def encoder():
    return RequestEncoder(include_formatted_values=False)


@pytest.fixture
def batch_encoder():
    return BatchEncoder("/api/data/v9.1", boundary_factory=fixed_boundaries)


class TestPartition:
    def test_reads_alone_and_consecutive_writes_grouped(self):
        requests = [
            RequestDescriptor("GET", "a"),
            RequestDescriptor("POST", "a"),
            RequestDescriptor("PATCH", "a(1)"),
            RequestDescriptor("GET", "b"),
            RequestDescriptor("GET", "c"),
            RequestDescriptor("DELETE", "a(1)"),
        ]
        assert partition(requests) == [
            ("read", [0]),
            ("changeset", [1, 2]),
            ("read", [3]),
            ("read", [4]),
            ("changeset", [5]),
        ]


class TestBatchEncoder:
    def test_single_read_wire_format(self, encoder, batch_encoder):
        envelope = batch_encoder.encode([encoder.encode(Retrieve("accounts", ID))])
        assert envelope.body == CRLF.join(
            [
                "--batch_x",
                "Content-Type: application/http",
                "Content-Transfer-Encoding: binary",
                "",
                f"GET /api/data/v9.1/accounts({ID}) HTTP/1.1",
                "OData-MaxVersion: 4.0",
                "OData-Version: 4.0",
                "Accept: application/json",
                "",
                "",
                "--batch_x--",
                "",
            ]
        )

    def test_changeset_wire_format(self, encoder, batch_encoder):
        requests = encoder.encode_all(
            [
                Save("accounts", {"name": "A"}),
                Save("contacts", {"parentcustomerid_account@odata.bind": PendingReference(1)}),
            ]
        )
        envelope = batch_encoder.encode(requests)
        part_headers = [
            "OData-MaxVersion: 4.0",
            "OData-Version: 4.0",
            "Accept: application/json",
            "Content-Type: application/json; charset=utf-8",
        ]
        assert envelope.body == CRLF.join(
            [
                "--batch_x",
                "Content-Type: multipart/mixed; boundary=changeset_x",
                "",
                "--changeset_x",
                "Content-Type: application/http",
                "Content-Transfer-Encoding: binary",
                "Content-ID: 1",
                "",
                "POST /api/data/v9.1/accounts HTTP/1.1",
                *part_headers,
                "",
                '{"name": "A"}',
                "--changeset_x",
                "Content-Type: application/http",
                "Content-Transfer-Encoding: binary",
                "Content-ID: 2",
                "",
                "POST /api/data/v9.1/contacts HTTP/1.1",
                *part_headers,
                "",
                '{"parentcustomerid_account@odata.bind": "$1"}',
                "--changeset_x--",
                "--batch_x--",
                "",
            ]
        )

    def test_every_line_ends_with_crlf(self, encoder, batch_encoder):
        envelope = batch_encoder.encode(encoder.encode_all([Save("accounts", {"name": "A"}), Retrieve("accounts", ID)]))
        assert "\n" not in envelope.body.replace(CRLF, "")
        assert envelope.body.endswith("--batch_x--" + CRLF)

    def test_grouping_and_content_ids(self, encoder):
        requests = encoder.encode_all(
            [
                Retrieve("accounts", ID),
                Save("accounts", {"name": "A"}),
                Save("accounts", {"name": "B"}, id=ID),
                Retrieve("contacts", ID),
                Delete("accounts", ID),
            ]
        )
        envelope = BatchEncoder("/api/data/v9.1", boundary_factory=counting_boundaries()).encode(requests)
        assert [s.kind for s in envelope.segments] == ["read", "changeset", "read", "changeset"]
        assert [s.indices for s in envelope.segments] == [(0,), (1, 2), (3,), (4,)]
        content_ids = [r.content_id for s in envelope.segments for r in s.requests]
        assert content_ids == [None, 1, 2, None, 3]
        assert envelope.operation_count == 5
        boundaries = [s.boundary for s in envelope.segments if s.is_changeset]
        assert len(set(boundaries)) == 2
        assert envelope.boundary not in boundaries

    def test_outer_headers(self, encoder, batch_encoder):
        envelope = batch_encoder.encode([encoder.encode(Retrieve("accounts", ID))])
        assert envelope.content_type == "multipart/mixed; boundary=batch_x"
        assert envelope.headers["Content-Type"] == envelope.content_type
        assert envelope.headers["OData-Version"] == "4.0"
        assert "Prefer" not in envelope.headers

    def test_continue_on_error(self, encoder, batch_encoder):
        envelope = batch_encoder.encode([encoder.encode(Retrieve("accounts", ID))], continue_on_error=True)
        assert envelope.headers["Prefer"] == "odata.continue-on-error"

    def test_pending_reference_as_url(self, encoder, batch_encoder):
        requests = encoder.encode_all(
            [Save("accounts", {"name": "A"}), Save("accounts", {"name": "B"}, id=PendingReference(1))]
        )
        body = batch_encoder.encode(requests).body
        assert f"PATCH $1 HTTP/1.1{CRLF}" in body

    def test_default_boundaries_are_unique(self, encoder):
        req = [encoder.encode(Retrieve("accounts", ID))]
        a = BatchEncoder("/api/data/v9.1").encode(req)
        b = BatchEncoder("/api/data/v9.1").encode(req)
        assert a.boundary.startswith("batch_")
        assert a.boundary != b.boundary


class TestBatchValidation:
    def test_empty_batch(self, batch_encoder):
        with pytest.raises(ConfigurationError) as exc:
            batch_encoder.encode([])
        assert exc.value.subcode == CONFIG_INVALID_VALUE

    def test_too_many_requests(self, batch_encoder):
        requests = [RequestDescriptor("GET", "accounts")] * (MAX_BATCH_OPERATIONS + 1)
        with pytest.raises(ConfigurationError):
            batch_encoder.encode(requests)

    def test_reference_to_later_write(self, encoder, batch_encoder):
        requests = encoder.encode_all(
            [Save("contacts", {"parentcustomerid_account@odata.bind": PendingReference(2)}), Save("accounts", {})]
        )
        with pytest.raises(ConfigurationError) as exc:
            batch_encoder.encode(requests)
        assert exc.value.subcode == CONFIG_PENDING_REFERENCE
        assert exc.value.details["operation_index"] == 0

    def test_reference_across_changesets(self, encoder, batch_encoder):
        requests = encoder.encode_all(
            [
                Save("accounts", {"name": "A"}),
                Retrieve("contacts", ID),
                Save("contacts", {"parentcustomerid_account@odata.bind": PendingReference(1)}),
            ]
        )
        with pytest.raises(ConfigurationError) as exc:
            batch_encoder.encode(requests)
        assert exc.value.subcode == CONFIG_PENDING_REFERENCE

    def test_read_cannot_use_reference(self, encoder, batch_encoder):
        requests = encoder.encode_all([Save("accounts", {"name": "A"}), Retrieve("accounts", PendingReference(1))])
        with pytest.raises(ConfigurationError) as exc:
            batch_encoder.encode(requests)
        assert exc.value.subcode == CONFIG_PENDING_REFERENCE

    def test_self_reference(self, encoder, batch_encoder):
        requests = encoder.encode_all([Save("accounts", {"name": "A"}, id=PendingReference(1))])
        with pytest.raises(ConfigurationError):
            batch_encoder.encode(requests)
