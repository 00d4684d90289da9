# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Unit tests for structured errors."""

import unittest

from cds_webapi.core._error_codes import HTTP_429, HTTP_503, PARAMETER_MISMATCH
from cds_webapi.core.errors import (
    CdsError,
    ConfigurationError,
    ParameterMismatchError,
    ProtocolDecodeError,
    RemoteOperationError,
)


class TestErrorHierarchy(unittest.TestCase):
    def test_all_errors_are_cds_errors(self):
        for err in (
            ConfigurationError("x"),
            ParameterMismatchError("Op", missing=["A"]),
            ProtocolDecodeError("x"),
            RemoteOperationError("x", 500),
        ):
            with self.subTest(type=type(err).__name__):
                self.assertIsInstance(err, CdsError)

    def test_to_dict(self):
        err = ConfigurationError("bad", subcode="config_invalid_value", details={"field": "top"})
        d = err.to_dict()
        self.assertEqual(d["code"], "configuration_error")
        self.assertEqual(d["subcode"], "config_invalid_value")
        self.assertEqual(d["details"], {"field": "top"})
        self.assertEqual(d["source"], "client")
        self.assertFalse(d["is_transient"])
        self.assertTrue(d["timestamp"].endswith("Z"))


class TestParameterMismatchError(unittest.TestCase):
    def test_message_and_details(self):
        err = ParameterMismatchError("SendEmail", unexpected=["Bogus"], missing=["EmailId"])
        self.assertEqual(err.subcode, PARAMETER_MISMATCH)
        self.assertIn("unexpected: Bogus", str(err))
        self.assertIn("missing: EmailId", str(err))
        self.assertEqual(err.details["operation"], "SendEmail")


class TestRemoteOperationError(unittest.TestCase):
    def test_from_response_with_service_error(self):
        err = RemoteOperationError.from_response(
            400,
            {"x-ms-service-request-id": "srv", "Content-Type": "application/json"},
            b'{"error": {"code": "0x80040203", "message": "Invalid argument"}}',
            operation_index=2,
        )
        self.assertEqual(err.message, "Invalid argument")
        self.assertEqual(err.service_code, "0x80040203")
        self.assertEqual(err.code, "remote_operation_error")
        self.assertEqual(err.details["service_error_code"], "0x80040203")
        self.assertEqual(err.http_status, 400)
        self.assertEqual(err.operation_index, 2)
        self.assertEqual(err.status_code, 400)
        self.assertEqual(err.source, "server")
        self.assertEqual(err.details["service_request_id"], "srv")
        self.assertEqual(err.details["operation_index"], 2)

    def test_from_response_with_plain_text(self):
        err = RemoteOperationError.from_response(502, {}, b"Bad gateway")
        self.assertEqual(err.message, "Bad gateway")
        self.assertIsNone(err.service_code)

    def test_from_response_without_body(self):
        err = RemoteOperationError.from_response(500, {}, b"")
        self.assertEqual(err.message, "HTTP 500")
        self.assertNotIn("body_excerpt", err.details)

    def test_transient_hint(self):
        self.assertTrue(RemoteOperationError("x", 429).is_transient)
        self.assertEqual(RemoteOperationError("x", 429).subcode, HTTP_429)
        self.assertTrue(RemoteOperationError("x", 503).is_transient)
        self.assertEqual(RemoteOperationError("x", 503).subcode, HTTP_503)
        self.assertFalse(RemoteOperationError("x", 500).is_transient)

    def test_unknown_status_has_no_subcode(self):
        self.assertIsNone(RemoteOperationError("x", 418).subcode)

    def test_invalid_retry_after_is_ignored(self):
        err = RemoteOperationError.from_response(429, {"Retry-After": "soon"}, b"")
        self.assertNotIn("retry_after", err.details)


if __name__ == "__main__":
    unittest.main()
