# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Client library for the CDS (Dataverse) Web API.

The protocol layer builds OData requests, batches and paging cookies and
decodes responses; :class:`~cds_webapi.client.CdsClient` puts it on the wire.
"""

from .client import BatchBuilder, CdsClient
from .core.config import CdsConfig
from .core.errors import (
    CdsError,
    ConfigurationError,
    ParameterMismatchError,
    ProtocolDecodeError,
    RemoteOperationError,
)
from .models.query import Query, query

__version__ = "0.1.0"

__all__ = [
    "CdsClient",
    "BatchBuilder",
    "CdsConfig",
    "CdsError",
    "ConfigurationError",
    "ParameterMismatchError",
    "ProtocolDecodeError",
    "RemoteOperationError",
    "Query",
    "query",
]
