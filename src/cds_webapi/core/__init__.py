# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Core infrastructure components for the CDS Web API client.

This module contains the foundational components including authentication,
configuration, transport, telemetry and error handling.
"""

from .results import (
    BatchResult,
    OperationOutcome,
    OperationResult,
    OperationStatus,
    QueryPage,
)

__all__ = [
    "BatchResult",
    "OperationOutcome",
    "OperationResult",
    "OperationStatus",
    "QueryPage",
]
