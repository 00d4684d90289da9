# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Credential variants and the bearer-token source used by the client.

Stored connection credentials are a closed set of variants, each a frozen
dataclass with a literal ``kind`` discriminator. :func:`credential_from_dict`
parses the stored form by ``kind`` and :func:`describe_credential` shows the
exhaustive dispatch every consumer uses. The client never acquires tokens
itself: a pre-issued token (OAuth/online variants) or an azure-core
``TokenCredential`` supplies the bearer value.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Literal, Mapping, NoReturn, Optional, Union

from azure.core.credentials import TokenCredential

from ._error_codes import CONFIG_CREDENTIAL
from .errors import ConfigurationError


@dataclass(frozen=True)
class WindowsCredential:
    domain: str
    username: str
    password: str = ""
    kind: Literal["windows"] = "windows"


@dataclass(frozen=True)
class OAuthCredential:
    username: str
    password: str = ""
    token: Optional[str] = None
    kind: Literal["oauth"] = "oauth"


@dataclass(frozen=True)
class AzureAdClientCredential:
    client_id: str
    client_secret: str
    authority: str
    callback_url: Optional[str] = None
    kind: Literal["azure_ad_client"] = "azure_ad_client"


@dataclass(frozen=True)
class AzureAdUserCredential:
    username: str
    password: str
    client_id: str
    client_secret: str
    authority: str
    kind: Literal["azure_ad_user"] = "azure_ad_user"


@dataclass(frozen=True)
class CdsOnlineCredential:
    username: str
    password: str = ""
    org_url: Optional[str] = None
    token: Optional[str] = None
    kind: Literal["cds_online"] = "cds_online"

    DEFAULT_CLIENT_ID = "51f81489-12ee-4a9e-aaae-a2591f45987d"


Credential = Union[
    WindowsCredential,
    OAuthCredential,
    AzureAdClientCredential,
    AzureAdUserCredential,
    CdsOnlineCredential,
]

_VARIANTS: Dict[str, type] = {
    "windows": WindowsCredential,
    "oauth": OAuthCredential,
    "azure_ad_client": AzureAdClientCredential,
    "azure_ad_user": AzureAdUserCredential,
    "cds_online": CdsOnlineCredential,
}


def _assert_never(value: NoReturn) -> NoReturn:
    raise ConfigurationError(f"Unhandled credential variant: {value!r}", subcode=CONFIG_CREDENTIAL)


def credential_from_dict(data: Mapping[str, Any]) -> Credential:
    """Parse a stored credential by its ``kind`` discriminator.

    :raises ~cds_webapi.core.errors.ConfigurationError: If ``kind`` is unknown or fields are missing.
    """
    kind = data.get("kind")
    cls = _VARIANTS.get(kind) if isinstance(kind, str) else None
    if cls is None:
        raise ConfigurationError(
            f"Unknown credential kind {kind!r}; expected one of {sorted(_VARIANTS)}",
            subcode=CONFIG_CREDENTIAL,
        )
    fields = {k: v for k, v in data.items() if k != "kind"}
    try:
        return cls(**fields)
    except TypeError as e:
        raise ConfigurationError(f"Invalid '{kind}' credential: {e}", subcode=CONFIG_CREDENTIAL) from e


def describe_credential(credential: Credential) -> str:
    """Display form of a credential; never includes secrets."""
    if isinstance(credential, WindowsCredential):
        return f"{credential.domain}\\{credential.username}" if credential.domain else credential.username
    if isinstance(credential, OAuthCredential):
        return credential.username
    if isinstance(credential, AzureAdClientCredential):
        return f"client {credential.client_id}"
    if isinstance(credential, AzureAdUserCredential):
        return credential.username
    if isinstance(credential, CdsOnlineCredential):
        return credential.username
    _assert_never(credential)


def _static_token(credential: Credential) -> Optional[str]:
    if isinstance(credential, (OAuthCredential, CdsOnlineCredential)):
        return credential.token or None
    if isinstance(credential, (WindowsCredential, AzureAdClientCredential, AzureAdUserCredential)):
        return None
    _assert_never(credential)


TokenSource = Union[TokenCredential, Callable[[str], str], Credential]


class _AuthManager:
    """Supplies the ``Authorization`` header value for each request.

    :param source: An azure-core ``TokenCredential``, a callable taking a scope and
        returning a bearer token, or a stored :data:`Credential` carrying a token.
    """

    def __init__(self, source: TokenSource) -> None:
        self._static: Optional[str] = None
        self._credential: Optional[TokenCredential] = None
        self._callable: Optional[Callable[[str], str]] = None

        if isinstance(source, tuple(_VARIANTS.values())):
            token = _static_token(source)  # type: ignore[arg-type]
            if not token:
                raise ConfigurationError(
                    f"A '{source.kind}' credential needs a token provider; "  # type: ignore[union-attr]
                    "pass a TokenCredential to the client instead.",
                    subcode=CONFIG_CREDENTIAL,
                )
            self._static = token
        elif hasattr(source, "get_token"):
            self._credential = source  # type: ignore[assignment]
        elif callable(source):
            self._callable = source
        else:
            raise ConfigurationError(
                "credential must be a TokenCredential, a token callable or a stored credential",
                subcode=CONFIG_CREDENTIAL,
            )

    def _acquire_token(self, scope: str) -> str:
        if self._static is not None:
            return self._static
        if self._credential is not None:
            return self._credential.get_token(scope).token
        return self._callable(scope)  # type: ignore[misc]

    def authorization(self, base_url: str) -> str:
        """Return ``Bearer <token>`` for the organization at ``base_url``."""
        return f"Bearer {self._acquire_token(f'{base_url}/.default')}"


__all__ = [
    "Credential",
    "WindowsCredential",
    "OAuthCredential",
    "AzureAdClientCredential",
    "AzureAdUserCredential",
    "CdsOnlineCredential",
    "credential_from_dict",
    "describe_credential",
]
