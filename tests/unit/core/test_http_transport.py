# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

from unittest.mock import Mock, patch

import pytest
import requests

from cds_webapi.core._http import RawResponse, RequestsTransport, Transport


def _response(status=200, headers=None, content=b"{}"):
    return Mock(status_code=status, headers=headers or {"Content-Type": "application/json"}, content=content)


class TestRawResponse:
    def test_header_lookup_is_case_insensitive(self):
        raw = RawResponse(200, {"OData-EntityId": "x"})
        assert raw.header("odata-entityid") == "x"
        assert raw.header("missing") is None


class TestRequestsTransport:
    """Test retry and timeout handling in RequestsTransport."""

    def test_default_configuration(self):
        transport = RequestsTransport()
        assert transport.max_attempts == 5
        assert transport.base_delay == 0.5
        assert transport.default_timeout is None
        assert isinstance(transport, Transport)

    @patch("requests.request")
    def test_successful_request(self, mock_request):
        mock_request.return_value = _response(201, {"OData-EntityId": "u"}, b"")
        raw = RequestsTransport().send("POST", "https://org.example/x", {"A": "1"}, b"{}")
        assert raw == RawResponse(201, {"OData-EntityId": "u"}, b"")
        mock_request.assert_called_once_with(
            "POST", "https://org.example/x", headers={"A": "1"}, data=b"{}", timeout=120
        )

    @patch("requests.request")
    def test_get_uses_short_timeout(self, mock_request):
        mock_request.return_value = _response()
        RequestsTransport().send("GET", "https://org.example/x", {}, None)
        assert mock_request.call_args.kwargs["timeout"] == 10

    @patch("requests.request")
    def test_configured_timeout_wins(self, mock_request):
        mock_request.return_value = _response()
        RequestsTransport(timeout=3).send("GET", "https://org.example/x", {}, None)
        assert mock_request.call_args.kwargs["timeout"] == 3

    @patch("requests.request")
    def test_http_errors_are_returned_not_retried(self, mock_request):
        mock_request.return_value = _response(503, content=b"busy")
        raw = RequestsTransport().send("GET", "https://org.example/x", {}, None)
        assert raw.status == 503
        assert mock_request.call_count == 1

    @patch("time.sleep")
    @patch("requests.request")
    def test_network_error_retry_for_get(self, mock_request, mock_sleep):
        mock_request.side_effect = [
            requests.exceptions.ConnectionError("Network error"),
            requests.exceptions.ConnectionError("Network error"),
            _response(),
        ]
        raw = RequestsTransport().send("GET", "https://org.example/x", {}, None)
        assert raw.status == 200
        assert mock_request.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [0.5, 1.0]

    @patch("time.sleep")
    @patch("requests.request")
    def test_writes_are_never_replayed(self, mock_request, mock_sleep):
        mock_request.side_effect = requests.exceptions.ConnectionError("Network error")
        with pytest.raises(requests.exceptions.ConnectionError):
            RequestsTransport().send("POST", "https://org.example/x", {}, b"{}")
        assert mock_request.call_count == 1
        mock_sleep.assert_not_called()

    @patch("time.sleep")
    @patch("requests.request")
    def test_retries_exhausted(self, mock_request, mock_sleep):
        mock_request.side_effect = requests.exceptions.Timeout("slow")
        with pytest.raises(requests.exceptions.Timeout):
            RequestsTransport(retries=2, backoff=0.1).send("GET", "https://org.example/x", {}, None)
        assert mock_request.call_count == 2
        mock_sleep.assert_called_once_with(0.1)

    def test_session_is_used_and_closed(self):
        session = Mock(spec=requests.Session)
        session.request.return_value = _response()
        transport = RequestsTransport(session=session)
        transport.send("GET", "https://org.example/x", {}, None)
        session.request.assert_called_once()
        transport.close()
        transport.close()
        session.close.assert_called_once()
