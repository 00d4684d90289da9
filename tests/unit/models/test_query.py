# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Unit tests for the fluent Query."""

import datetime
import unittest
import uuid

from cds_webapi.core._error_codes import (
    CONFIG_EMPTY_PATH,
    CONFIG_INVALID_VALUE,
    CONFIG_MISSING_PATH,
    CONFIG_NESTED_EXPAND,
)
from cds_webapi.core.errors import ConfigurationError
from cds_webapi.models.query import Query, encode_query_value, query


class TestQueryRendering(unittest.TestCase):
    """Query string rendering."""

    def test_empty_query_renders_empty_string(self):
        self.assertEqual(Query("account").to_query_string(), "")

    def test_relative_url_without_options_is_bare_path(self):
        self.assertEqual(Query("account").path("accounts").to_relative_url(), "accounts")

    def test_clause_order(self):
        q = (
            Query("account")
            .path("accounts")
            .top(10)
            .order_by("revenue", descending=True)
            .filter_eq("statecode", 0)
            .select("name", "revenue")
        )
        self.assertEqual(
            q.to_query_string(),
            "$select=name,revenue&$filter=statecode%20eq%200&$orderby=revenue%20desc&$top=10",
        )

    def test_expand_sits_between_orderby_and_top(self):
        q = Query("account").path("accounts").top(5).expand("primarycontactid").order_by("name")
        self.assertEqual(q.to_query_string(), "$orderby=name&$expand=primarycontactid&$top=5")

    def test_multiple_filters_are_anded(self):
        q = Query("account").filter_eq("a", 1).filter_eq("b", 2)
        self.assertEqual(q.to_query_string(), "$filter=(a%20eq%201)%20and%20(b%20eq%202)")

    def test_string_literal_quotes_are_doubled(self):
        q = Query("account").filter_eq("name", "Contoso's")
        self.assertEqual(q.to_query_string(), "$filter=name%20eq%20'Contoso''s'")

    def test_guid_string_stays_quoted_but_uuid_is_bare(self):
        raw = "11111111-2222-3333-4444-555555555555"
        self.assertEqual(Query().filter_eq("accountid", raw).filters, (f"accountid eq '{raw}'",))
        self.assertEqual(Query().filter_eq("accountid", uuid.UUID(raw)).filters, (f"accountid eq {raw}",))

    def test_datetime_literal(self):
        q = Query().filter_gt("createdon", datetime.datetime(2024, 1, 2, 3, 4, 5))
        self.assertEqual(q.to_query_string(), "$filter=createdon%20gt%202024-01-02T03:04:05Z")

    def test_boolean_and_null_filters(self):
        q = Query().filter_eq("donotemail", True).filter_null("telephone1")
        self.assertEqual(q.filters, ("donotemail eq true", "telephone1 eq null"))

    def test_string_functions(self):
        q = Query().filter_contains("name", "abc").filter_startswith("name", "A").filter_endswith("name", "z")
        self.assertEqual(
            q.filters,
            ("contains(name,'abc')", "startswith(name,'A')", "endswith(name,'z')"),
        )

    def test_select_ignores_duplicates_and_keeps_order(self):
        q = Query().select("name", "revenue").select("name", "telephone1")
        self.assertEqual(q.selected, ("name", "revenue", "telephone1"))

    def test_multi_column_order_by(self):
        q = Query().order_by("name").order_by("createdon", descending=True)
        self.assertEqual(q.to_query_string(), "$orderby=name,createdon%20desc")

    def test_expand_with_sub_query(self):
        contacts = Query().select("fullname").filter_eq("statecode", 0)
        q = Query("account").path("accounts").expand("primarycontactid", contacts)
        self.assertEqual(
            q.to_query_string(),
            "$expand=primarycontactid($select=fullname;$filter=statecode%20eq%200)",
        )

    def test_relative_url_with_options(self):
        q = query("account", "accounts").select("name")
        self.assertEqual(q.to_relative_url(), "accounts?$select=name")

    def test_encode_query_value_keeps_odata_punctuation(self):
        self.assertEqual(encode_query_value("a eq 'b'"), "a%20eq%20'b'")
        self.assertEqual(encode_query_value("x&y"), "x%26y")


class TestQueryImmutability(unittest.TestCase):
    def test_configuration_returns_new_query(self):
        base = Query("account").path("accounts")
        selected = base.select("name")
        self.assertEqual(base.selected, ())
        self.assertEqual(selected.selected, ("name",))
        self.assertIsNot(base, selected)

    def test_shared_base_can_be_extended_twice(self):
        base = Query("account").path("accounts").filter_eq("statecode", 0)
        a = base.top(1)
        b = base.select("name")
        self.assertIsNone(b.row_limit)
        self.assertEqual(a.selected, ())


class TestQueryValidation(unittest.TestCase):
    def test_empty_path_raises(self):
        with self.assertRaises(ConfigurationError) as ctx:
            Query("account").path("  ")
        self.assertEqual(ctx.exception.subcode, CONFIG_EMPTY_PATH)

    def test_path_slashes_are_trimmed(self):
        self.assertEqual(Query().path("/accounts/").entity_set_path, "accounts")

    def test_missing_path_raises_on_render(self):
        with self.assertRaises(ConfigurationError) as ctx:
            Query("account").select("name").to_relative_url()
        self.assertEqual(ctx.exception.subcode, CONFIG_MISSING_PATH)

    def test_nested_expand_raises(self):
        inner = Query().expand("owninguser")
        with self.assertRaises(ConfigurationError) as ctx:
            Query("account").expand("primarycontactid", inner)
        self.assertEqual(ctx.exception.subcode, CONFIG_NESTED_EXPAND)

    def test_expand_sub_query_with_top_raises(self):
        with self.assertRaises(ConfigurationError) as ctx:
            Query("account").expand("contact_customer_accounts", Query().top(3))
        self.assertEqual(ctx.exception.subcode, CONFIG_NESTED_EXPAND)

    def test_top_must_be_positive_int(self):
        for bad in (0, -1, True, "5"):
            with self.subTest(value=bad):
                with self.assertRaises(ConfigurationError) as ctx:
                    Query().top(bad)
                self.assertEqual(ctx.exception.subcode, CONFIG_INVALID_VALUE)

    def test_empty_names_raise(self):
        with self.assertRaises(ConfigurationError):
            Query().select("name", "")
        with self.assertRaises(ConfigurationError):
            Query().order_by(" ")
        with self.assertRaises(ConfigurationError):
            Query().filter("")


if __name__ == "__main__":
    unittest.main()
