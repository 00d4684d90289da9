# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Wire constants and OData literal helpers."""
