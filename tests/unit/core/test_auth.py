# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

from unittest.mock import MagicMock

import pytest
from azure.core.credentials import AccessToken, TokenCredential

from cds_webapi.core._auth import (
    AzureAdClientCredential,
    CdsOnlineCredential,
    OAuthCredential,
    WindowsCredential,
    _AuthManager,
    credential_from_dict,
    describe_credential,
)
from cds_webapi.core._error_codes import CONFIG_CREDENTIAL
from cds_webapi.core.errors import ConfigurationError

BASE_URL = "https://org.example"


class TestCredentialVariants:
    def test_from_dict_by_kind(self):
        cred = credential_from_dict({"kind": "windows", "domain": "CORP", "username": "jdoe", "password": "x"})
        assert isinstance(cred, WindowsCredential)
        assert cred.kind == "windows"

    def test_from_dict_unknown_kind(self):
        with pytest.raises(ConfigurationError) as exc:
            credential_from_dict({"kind": "kerberos"})
        assert exc.value.subcode == CONFIG_CREDENTIAL

    def test_from_dict_missing_fields(self):
        with pytest.raises(ConfigurationError):
            credential_from_dict({"kind": "azure_ad_client", "client_id": "a"})

    @pytest.mark.parametrize(
        "cred, expected",
        [
            (WindowsCredential("CORP", "jdoe"), "CORP\\jdoe"),
            (WindowsCredential("", "jdoe"), "jdoe"),
            (OAuthCredential("jdoe@contoso.com"), "jdoe@contoso.com"),
            (AzureAdClientCredential("app-id", "secret", "https://login.example"), "client app-id"),
            (CdsOnlineCredential("jdoe@contoso.com", "pw"), "jdoe@contoso.com"),
        ],
    )
    def test_describe_never_shows_secrets(self, cred, expected):
        text = describe_credential(cred)
        assert text == expected
        assert "secret" not in text and "pw" not in text


class TestAuthManager:
    def test_token_credential(self):
        credential = MagicMock(spec=TokenCredential)
        credential.get_token.return_value = AccessToken("tok", 0)
        auth = _AuthManager(credential)
        assert auth.authorization(BASE_URL) == "Bearer tok"
        credential.get_token.assert_called_once_with(f"{BASE_URL}/.default")

    def test_callable(self):
        scopes = []

        def provider(scope):
            scopes.append(scope)
            return "abc"

        assert _AuthManager(provider).authorization(BASE_URL) == "Bearer abc"
        assert scopes == [f"{BASE_URL}/.default"]

    def test_stored_credential_with_token(self):
        auth = _AuthManager(OAuthCredential("jdoe", token="stored"))
        assert auth.authorization(BASE_URL) == "Bearer stored"

    def test_stored_credential_without_token(self):
        with pytest.raises(ConfigurationError) as exc:
            _AuthManager(WindowsCredential("CORP", "jdoe"))
        assert exc.value.subcode == CONFIG_CREDENTIAL

    def test_unsupported_source(self):
        with pytest.raises(ConfigurationError):
            _AuthManager(42)
