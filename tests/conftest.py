"""Shared pytest fixtures for the catalog sync tests."""

from unittest.mock import AsyncMock, Mock

import pytest

from catalog_sync.cache import KeyIdCache
from catalog_sync.config import Config, PlatformConfig, SyncConfig
from catalog_sync.options import SyncOptions
from tests.fakes import FakePlatform


@pytest.fixture
def platform_config():
    """Create a test target project configuration."""
    return PlatformConfig(
        project_key="test-project",
        client_id="test-client-id",
        client_secret="test-client-secret",
        auth_url="https://auth.test.example.com",
        api_url="https://api.test.example.com",
    )


@pytest.fixture
def sync_config():
    """Create a test sync configuration."""
    return SyncConfig(
        batch_size=50,
        cache_size=1000,
        page_size=100,
        max_concurrent=5,
        retry_attempts=0,
        retry_delay=0.1,
    )


@pytest.fixture
def config(platform_config, sync_config):
    """Create a full test configuration."""
    return Config(target=platform_config, sync=sync_config)


@pytest.fixture
def mock_client():
    """Create a mock platform client with every remote operation mocked."""
    client = Mock()
    client.lookup_ids = AsyncMock(return_value={})
    client.fetch_by_keys = AsyncMock(return_value=[])
    client.fetch_by_key = AsyncMock(return_value=None)
    client.create = AsyncMock()
    client.update = AsyncMock()
    client.upsert_custom_object = AsyncMock()
    client.fetch_custom_objects = AsyncMock(return_value=[])
    client.query_custom_objects = AsyncMock(return_value=[])
    client.delete_custom_object = AsyncMock(return_value=None)
    return client


@pytest.fixture
def fake_platform():
    """Create an empty in-memory target project."""
    return FakePlatform()


@pytest.fixture
def errors():
    """Collect error callback invocations."""
    return []


@pytest.fixture
def warnings():
    """Collect warning callback invocations."""
    return []


@pytest.fixture
def options(errors, warnings):
    """Create sync options whose callbacks record into ``errors`` and ``warnings``."""
    return SyncOptions(
        batch_size=50,
        page_size=100,
        error_callback=lambda message, cause, old, new, actions: errors.append(
            {"message": message, "cause": cause, "old": old, "new": new, "actions": actions}
        ),
        warning_callback=lambda message, new, old: warnings.append(message),
    )


@pytest.fixture
def cache(fake_platform):
    """Create a key to id cache backed by the fake platform."""
    return KeyIdCache(fake_platform, max_size=100, page_size=100)
