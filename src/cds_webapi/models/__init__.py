# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Data models and type definitions for the CDS Web API client.

- :class:`~cds_webapi.models.query.Query`: Immutable fluent query.
- :class:`~cds_webapi.models.paging.PagingCookie`: FetchXML paging state.
- :mod:`~cds_webapi.models.operations`: Logical operations and ``PendingReference``.
- :class:`~cds_webapi.models.request.RequestDescriptor`: Encoded request.
- :class:`~cds_webapi.models.record.Record`: Record with raw and formatted values.
- :class:`~cds_webapi.models.reference.EntityReference`: Pointer to one record.
- :mod:`~cds_webapi.models.metadata`: Action, function and option set metadata.

Import directly from the specific module files.
"""

__all__ = []
