# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Protocol layer: request, batch and response codecs and the action invoker."""
