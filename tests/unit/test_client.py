"""Unit tests for the PlatformClient wrapper."""

import json
from unittest.mock import patch

import httpx
import pytest

from catalog_sync.client import PlatformClient, endpoint_for, key_in_predicate
from catalog_sync.config import SyncConfig
from catalog_sync.exceptions import (
    AuthenticationError,
    BadRequestError,
    ClientError,
    ConcurrentModificationError,
    GatewayError,
    RateLimitError,
    ResourceNotFoundError,
    ServerError,
)

API_URL = "https://api.test.example.com"


def make_client(platform_config, sync_config, handler) -> PlatformClient:
    """Create a client whose HTTP traffic goes to ``handler``."""
    client = PlatformClient(platform_config, sync_config)
    client._http_client = httpx.AsyncClient(
        base_url=API_URL, transport=httpx.MockTransport(handler)
    )
    client._access_token = "test-token"
    return client


def test_endpoint_for():
    """Test reference type ids map to REST endpoints."""
    assert endpoint_for("product-type") == "product-types"
    assert endpoint_for("inventory-entry") == "inventory"
    with pytest.raises(ValueError, match="Unsupported resource type id"):
        endpoint_for("unicorn")


def test_key_in_predicate():
    """Test keys are quoted in the predicate."""
    assert key_in_predicate(["a", 'b"c']) == 'key in ("a", "b\\"c")'


@pytest.mark.asyncio
class TestPlatformClient:
    """Test the platform client against a mocked transport."""

    async def test_initialization(self, platform_config, sync_config):
        """Test client initialization."""
        client = PlatformClient(platform_config, sync_config)

        assert client.project_key == "test-project"
        assert client._http_client is None
        with pytest.raises(RuntimeError, match="not connected"):
            client.http

    async def test_connect_authenticates(self, platform_config, sync_config):
        """Test connect obtains a token and sends it with API requests."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path == "/oauth/token":
                return httpx.Response(200, json={"access_token": "abc"})
            return httpx.Response(200, json={"key": "test-project", "name": "Test"})

        real_client = httpx.AsyncClient
        transport = httpx.MockTransport(handler)
        with patch(
            "catalog_sync.client.httpx.AsyncClient",
            lambda **kwargs: real_client(transport=transport, **kwargs),
        ):
            async with PlatformClient(platform_config, sync_config) as client:
                health = await client.health_check()

        assert health == {"status": "healthy", "project_key": "test-project", "name": "Test"}
        assert seen[0].url.host == "auth.test.example.com"
        assert seen[1].url.path == "/test-project"
        assert seen[1].headers["Authorization"] == "Bearer abc"
        assert client._http_client is None

    async def test_connect_rejected_credentials(self, platform_config, sync_config):
        """Test a rejected token request raises AuthenticationError."""
        real_client = httpx.AsyncClient
        transport = httpx.MockTransport(lambda request: httpx.Response(401, text="nope"))
        with patch(
            "catalog_sync.client.httpx.AsyncClient",
            lambda **kwargs: real_client(transport=transport, **kwargs),
        ):
            client = PlatformClient(platform_config, sync_config)
            with pytest.raises(AuthenticationError):
                await client.connect()
            await client.close()

    @pytest.mark.parametrize(
        "status,error_type",
        [
            (400, BadRequestError),
            (401, AuthenticationError),
            (404, ResourceNotFoundError),
            (409, ConcurrentModificationError),
            (418, ClientError),
            (429, RateLimitError),
            (500, ServerError),
            (503, GatewayError),
        ],
    )
    async def test_status_code_mapping(
        self, platform_config, sync_config, status, error_type
    ):
        """Test error statuses map to exception types."""
        client = make_client(
            platform_config, sync_config, lambda request: httpx.Response(status, text="err")
        )

        with pytest.raises(error_type) as exc_info:
            await client.create("states", {"key": "s1"})

        assert exc_info.value.status_code == status
        await client.close()

    async def test_rate_limit_retry_after(self, platform_config, sync_config):
        """Test the Retry-After header is kept on the error."""
        client = make_client(
            platform_config,
            sync_config,
            lambda request: httpx.Response(429, headers={"Retry-After": "7"}),
        )

        with pytest.raises(RateLimitError) as exc_info:
            await client.create("states", {"key": "s1"})

        assert exc_info.value.retry_after == 7
        await client.close()

    async def test_transient_errors_are_retried(self, platform_config):
        """Test server errors are retried until a request succeeds."""
        responses = [httpx.Response(500), httpx.Response(502), httpx.Response(201, json={"id": "1"})]
        client = make_client(
            platform_config,
            SyncConfig(retry_attempts=2, retry_delay=0.1),
            lambda request: responses.pop(0),
        )

        assert await client.create("states", {"key": "s1"}) == {"id": "1"}
        assert client.get_stats()["request_count"] == 3
        await client.close()

    async def test_conflicts_are_not_retried(self, platform_config):
        """Test a version conflict is raised without a transport retry."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(409)

        client = make_client(
            platform_config, SyncConfig(retry_attempts=3, retry_delay=0.1), handler
        )

        with pytest.raises(ConcurrentModificationError):
            await client.update("states", "id-1", 3, [{"action": "setName"}])

        assert len(calls) == 1
        assert json.loads(calls[0].content) == {
            "version": 3,
            "actions": [{"action": "setName"}],
        }
        assert calls[0].url.path == "/test-project/states/id-1"
        await client.close()

    async def test_query_pages_by_id(self, platform_config, sync_config):
        """Test queries follow the last id until a short page is returned."""
        pages = {
            None: [{"id": "1", "key": "a"}, {"id": "2", "key": "b"}],
            '"2"': [{"id": "3", "key": "c"}],
        }
        seen_predicates = []

        def handler(request: httpx.Request) -> httpx.Response:
            where = request.url.params.get_list("where")
            seen_predicates.append(where)
            last = next((w.split("id > ")[1] for w in where if w.startswith("id > ")), None)
            return httpx.Response(200, json={"results": pages[last]})

        client = make_client(
            platform_config, SyncConfig(page_size=2, retry_attempts=0), handler
        )

        ids = await client.lookup_ids("state", ["a", "b", "c"])

        assert ids == {"a": "1", "b": "2", "c": "3"}
        assert seen_predicates[0] == ['key in ("a", "b", "c")']
        assert seen_predicates[1] == ['key in ("a", "b", "c")', 'id > "2"']
        await client.close()

    async def test_query_uses_page_limit(self, platform_config, sync_config):
        """Test the page size is sent as the limit, sorted by id."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"results": []})

        client = make_client(platform_config, sync_config, handler)
        await client.query("states", limit=2)

        assert seen[0].url.params["limit"] == "2"
        assert seen[0].url.params["sort"] == "id asc"
        await client.close()

    async def test_fetch_by_key_not_found(self, platform_config, sync_config):
        """Test a missing resource is returned as None."""
        client = make_client(
            platform_config, sync_config, lambda request: httpx.Response(404)
        )

        assert await client.fetch_by_key("states", "s1") is None
        await client.close()

    async def test_custom_objects(self, platform_config, sync_config):
        """Test custom object upsert, container queries and delete paths."""
        seen = []

        def handler(request):
            seen.append(request)
            if request.method == "DELETE":
                return httpx.Response(404)
            return httpx.Response(200, json={"results": []})

        client = make_client(platform_config, sync_config, handler)

        await client.upsert_custom_object("c", "k", {"a": 1})
        await client.query_custom_objects("c", ['lastModifiedAt < "x"'])
        assert await client.delete_custom_object("c", "k") is None

        assert json.loads(seen[0].content) == {"container": "c", "key": "k", "value": {"a": 1}}
        assert seen[1].url.params.get_list("where") == [
            'container = "c"',
            'lastModifiedAt < "x"',
        ]
        assert seen[2].url.path == "/test-project/custom-objects/c/k"
        await client.close()
