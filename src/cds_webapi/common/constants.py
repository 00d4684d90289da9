# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Wire-level constants for the CDS Web API (OData v4).
"""

ODATA_VERSION = "4.0"

HEADER_ODATA_MAX_VERSION = "OData-MaxVersion"
HEADER_ODATA_VERSION = "OData-Version"
HEADER_ODATA_ENTITY_ID = "OData-EntityId"
HEADER_PREFER = "Prefer"
HEADER_ACCEPT = "Accept"
HEADER_CONTENT_TYPE = "Content-Type"
HEADER_CONTENT_ID = "Content-ID"
HEADER_AUTHORIZATION = "Authorization"
HEADER_CLIENT_REQUEST_ID = "x-ms-client-request-id"
HEADER_CORRELATION_ID = "x-ms-correlation-id"
HEADER_SERVICE_REQUEST_ID = "x-ms-service-request-id"

CONTENT_TYPE_JSON = "application/json; charset=utf-8"
CONTENT_TYPE_HTTP = "application/http"
CONTENT_TYPE_MULTIPART = "multipart/mixed"

# Prefer tokens
PREFER_FORMATTED_VALUES = 'odata.include-annotations="OData.Community.Display.V1.FormattedValue"'
PREFER_MAX_PAGE_SIZE = "odata.maxpagesize={}"
PREFER_CONTINUE_ON_ERROR = "odata.continue-on-error"

# Annotations
ANNOTATION_FORMATTED_VALUE = "OData.Community.Display.V1.FormattedValue"
ANNOTATION_NEXT_LINK = "@odata.nextLink"
ANNOTATION_ETAG = "@odata.etag"
ANNOTATION_ID = "@odata.id"
ANNOTATION_EDIT_LINK = "@odata.editLink"
ANNOTATION_PAGING_COOKIE = "@Microsoft.Dynamics.CRM.fetchxmlpagingcookie"
ANNOTATION_MORE_RECORDS = "@Microsoft.Dynamics.CRM.morerecords"
ANNOTATION_TOTAL_COUNT = "@Microsoft.Dynamics.CRM.totalrecordcount"

# Namespace used by platform actions, functions and enum literals
CRM_NAMESPACE = "Microsoft.Dynamics.CRM"

PICKLIST_METADATA_TYPE = f"{CRM_NAMESPACE}.PicklistAttributeMetadata"

WRITE_METHODS = frozenset({"POST", "PATCH", "PUT", "DELETE"})
