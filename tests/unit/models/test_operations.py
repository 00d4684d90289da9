# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Unit tests for logical operations and pending references."""

import dataclasses

import pytest

from cds_webapi.core._error_codes import CONFIG_INVALID_VALUE, CONFIG_PENDING_REFERENCE
from cds_webapi.core.errors import ConfigurationError
from cds_webapi.models.operations import (
    OPERATION_TYPES,
    BoundFunction,
    Delete,
    FetchXmlQuery,
    OptionSetLookup,
    PendingReference,
    Retrieve,
    RetrieveMultiple,
    Save,
    UnboundAction,
)
from cds_webapi.models.query import Query


class TestPendingReference:
    def test_render(self):
        ref = PendingReference(3)
        assert ref.render() == "$3"
        assert str(ref) == "$3"

    @pytest.mark.parametrize("bad", [0, -2, True, "1", 1.0])
    def test_content_id_must_be_positive_int(self, bad):
        with pytest.raises(ConfigurationError) as exc:
            PendingReference(bad)
        assert exc.value.subcode == CONFIG_PENDING_REFERENCE

    def test_equality_by_content_id(self):
        assert PendingReference(1) == PendingReference(1)
        assert PendingReference(1) != PendingReference(2)


class TestOperations:
    def test_kinds_are_unique(self):
        kinds = [t.kind for t in OPERATION_TYPES]
        assert len(kinds) == len(set(kinds))

    def test_save_create_and_update(self):
        assert Save("accounts", {"name": "x"}).is_create
        assert not Save("accounts", {"name": "x"}, id="abc").is_create

    def test_save_accepts_pending_reference_id(self):
        op = Save("accounts", {"name": "x"}, id=PendingReference(1))
        assert op.id.render() == "$1"

    def test_save_data_must_be_dict(self):
        with pytest.raises(ConfigurationError) as exc:
            Save("accounts", [("name", "x")])
        assert exc.value.subcode == CONFIG_INVALID_VALUE

    @pytest.mark.parametrize(
        "factory",
        [
            lambda: Retrieve("", "id"),
            lambda: Retrieve("accounts", " "),
            lambda: Delete("accounts", None),
            lambda: UnboundAction(""),
            lambda: OptionSetLookup("account", ""),
            lambda: BoundFunction("accounts", "id", ""),
        ],
    )
    def test_required_fields(self, factory):
        with pytest.raises(ConfigurationError):
            factory()

    def test_retrieve_multiple_page_size_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            RetrieveMultiple(Query("account").path("accounts"), max_page_size=0)

    def test_fetch_xml_page_fields_validated(self):
        with pytest.raises(ConfigurationError):
            FetchXmlQuery("accounts", "<fetch/>", page_number=0)
        with pytest.raises(ConfigurationError):
            FetchXmlQuery("accounts", "<fetch/>", page_size=-5)

    def test_operations_are_frozen(self):
        op = Delete("accounts", "abc")
        with pytest.raises(dataclasses.FrozenInstanceError):
            op.id = "def"

    def test_headers_default_is_not_shared(self):
        a = Delete("accounts", "a")
        b = Delete("accounts", "b")
        a.headers["If-Match"] = "*"
        assert b.headers == {}
