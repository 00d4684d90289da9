# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Shared pytest fixtures and configuration for CDS Web API client tests.

This module provides common test fixtures, fake transports, and configuration
that can be used across all test modules.
"""

import pytest

from cds_webapi.core.config import CdsConfig

from tests.unit.test_helpers import FakeTransport


@pytest.fixture
def test_config():
    """Test configuration with safe defaults."""
    return CdsConfig(language_code=1033, http_retries=0, http_backoff=0.1, http_timeout=5)


@pytest.fixture
def fake_transport():
    """Transport answering 204 unless a test scripts other responses."""
    return FakeTransport()


@pytest.fixture
def sample_base_url():
    """Standard test base URL."""
    return "https://org.example.com"


@pytest.fixture
def sample_entity_data():
    """Sample entity data for testing."""
    return {
        "name": "Test Account",
        "telephone1": "555-0100",
        "websiteurl": "https://example.com",
    }


@pytest.fixture
def sample_guid():
    """Sample GUID for testing."""
    return "11111111-2222-3333-4444-555555555555"
