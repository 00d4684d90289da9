# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

# HTTP subcode constants
HTTP_400 = "http_400"
HTTP_401 = "http_401"
HTTP_403 = "http_403"
HTTP_404 = "http_404"
HTTP_409 = "http_409"
HTTP_412 = "http_412"
HTTP_429 = "http_429"
HTTP_500 = "http_500"
HTTP_502 = "http_502"
HTTP_503 = "http_503"
HTTP_504 = "http_504"

ALL_HTTP_SUBCODES = {
    HTTP_400,
    HTTP_401,
    HTTP_403,
    HTTP_404,
    HTTP_409,
    HTTP_412,
    HTTP_429,
    HTTP_500,
    HTTP_502,
    HTTP_503,
    HTTP_504,
}

# Statuses the caller may choose to retry
TRANSIENT_STATUS_CODES = {429, 503}

# Configuration subcodes
CONFIG_EMPTY_PATH = "config_empty_path"
CONFIG_MISSING_PATH = "config_missing_path"
CONFIG_NESTED_EXPAND = "config_nested_expand"
CONFIG_INVALID_VALUE = "config_invalid_value"
CONFIG_PAGING_CONFLICT = "config_paging_conflict"
CONFIG_BINDING = "config_binding"
CONFIG_PENDING_REFERENCE = "config_pending_reference"
CONFIG_CREDENTIAL = "config_credential"

# Parameter subcodes
PARAMETER_MISMATCH = "parameter_mismatch"

# Decode subcodes
DECODE_INVALID_JSON = "decode_invalid_json"
DECODE_MISSING_OPTIONSET = "decode_missing_optionset"
DECODE_INVALID_MULTIPART = "decode_invalid_multipart"
DECODE_INVALID_HTTP_PART = "decode_invalid_http_part"
DECODE_UNEXPECTED_SHAPE = "decode_unexpected_shape"
