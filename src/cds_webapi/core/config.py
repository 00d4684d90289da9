# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from ._error_codes import CONFIG_INVALID_VALUE
from .errors import ConfigurationError
from .telemetry import TelemetryConfig

DEFAULT_WEB_API_VERSION = "v9.1"
DEFAULT_MAX_RECORDS = 100


@dataclass(frozen=True)
class CdsConfig:
    """
    Configuration settings for CDS Web API client operations.

    :param web_api_version: Web API version segment, with or without the leading ``v``. Default is ``v9.1``.
    :type web_api_version: str
    :param max_records: Default page size used by :meth:`~cds_webapi.client.CdsClient.fetch`. Default is 100.
    :type max_records: int
    :param language_code: LCID (Locale ID) used when picking option set labels. Default is 1033.
    :type language_code: int
    :param http_retries: Maximum attempts for idempotent requests on network errors (default: 5).
    :type http_retries: int or None
    :param http_backoff: Base delay in seconds for exponential backoff (default: 0.5).
    :type http_backoff: float or None
    :param http_timeout: Request timeout in seconds (default: method-dependent).
    :type http_timeout: float or None
    :param telemetry: Optional telemetry configuration. Telemetry is disabled when ``None``.
    :type telemetry: ~cds_webapi.core.telemetry.TelemetryConfig or None
    """

    web_api_version: str = DEFAULT_WEB_API_VERSION
    max_records: int = DEFAULT_MAX_RECORDS
    language_code: int = 1033

    http_retries: Optional[int] = None
    http_backoff: Optional[float] = None
    http_timeout: Optional[float] = None

    telemetry: Optional[TelemetryConfig] = None

    def __post_init__(self) -> None:
        if not isinstance(self.max_records, int) or self.max_records < 1:
            raise ConfigurationError("max_records must be a positive integer", subcode=CONFIG_INVALID_VALUE)
        version = (self.web_api_version or "").strip()
        if not version.lstrip("v"):
            raise ConfigurationError("web_api_version is required", subcode=CONFIG_INVALID_VALUE)

    @property
    def api_path(self) -> str:
        """Service root path, e.g. ``/api/data/v9.1``."""
        version = self.web_api_version.strip()
        if not version.startswith("v"):
            version = "v" + version
        return f"/api/data/{version}"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CdsConfig":
        """
        Create a configuration from ``CDS_WEBAPI_*`` environment variables.

        Unset variables fall back to the defaults.

        :return: Configuration instance.
        :rtype: ~cds_webapi.core.config.CdsConfig
        :raises ~cds_webapi.core.errors.ConfigurationError: If a variable cannot be parsed.
        """
        env = os.environ if environ is None else environ

        def _number(name: str, kind):
            raw = env.get(name)
            if raw is None or not raw.strip():
                return None
            try:
                return kind(raw)
            except ValueError:
                raise ConfigurationError(
                    f"{name} must be a {kind.__name__}, got {raw!r}",
                    subcode=CONFIG_INVALID_VALUE,
                ) from None

        max_records = _number("CDS_WEBAPI_MAX_RECORDS", int)
        return cls(
            web_api_version=env.get("CDS_WEBAPI_VERSION") or DEFAULT_WEB_API_VERSION,
            max_records=max_records if max_records is not None else DEFAULT_MAX_RECORDS,
            http_retries=_number("CDS_WEBAPI_HTTP_RETRIES", int),
            http_timeout=_number("CDS_WEBAPI_HTTP_TIMEOUT", float),
        )
