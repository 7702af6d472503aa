"""Platform API client with OAuth, health checks and retry logic."""

import json
from collections.abc import Iterable
from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from catalog_sync import __version__
from catalog_sync.config import PlatformConfig, SyncConfig
from catalog_sync.exceptions import (
    APIError,
    AuthenticationError,
    BadRequestError,
    ClientError,
    ConcurrentModificationError,
    GatewayError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
    ServerError,
)

logger = structlog.get_logger(__name__)

# Resource type id -> REST endpoint
ENDPOINTS: dict[str, str] = {
    "state": "states",
    "product-type": "product-types",
    "category": "categories",
    "inventory-entry": "inventory",
    "channel": "channels",
    "type": "types",
    "customer": "customers",
    "product": "products",
    "tax-category": "tax-categories",
    "key-value-document": "custom-objects",
}

TRANSIENT_ERRORS = (ServerError, NetworkError, RateLimitError)


def endpoint_for(type_id: str) -> str:
    """Map a reference type id to its REST endpoint."""
    try:
        return ENDPOINTS[type_id]
    except KeyError:
        raise ValueError(f"Unsupported resource type id: {type_id}") from None


def key_in_predicate(keys: Iterable[str], field: str = "key") -> str:
    """Build a ``field in ("a", "b")`` query predicate."""
    quoted = ", ".join(json.dumps(k) for k in keys)
    return f"{field} in ({quoted})"


class PlatformClient:
    """Async REST client for one target project.

    Provides:
    - OAuth client-credentials authentication
    - Status code to exception mapping
    - Retry with exponential backoff for transient failures
    - Id-ordered paging for queries
    """

    def __init__(
        self,
        platform_config: PlatformConfig,
        sync_config: SyncConfig | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            platform_config: Project key, credentials and URLs.
            sync_config: Retry and paging settings.
        """
        self.platform_config = platform_config
        self.sync_config = sync_config or SyncConfig()
        self.project_key = platform_config.project_key
        self._http_client: httpx.AsyncClient | None = None
        self._access_token: str | None = None
        self._request_count = 0
        self._error_count = 0
        self._logger = logger.bind(
            project=self.project_key, url=str(platform_config.api_url)
        )

    async def __aenter__(self) -> "PlatformClient":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def connect(self) -> None:
        """Open the HTTP connection pool and obtain an access token.

        Raises:
            AuthenticationError: If the token request is rejected.
            NetworkError: If the auth server cannot be reached.
        """
        if self._http_client is not None:
            return

        self._http_client = httpx.AsyncClient(
            base_url=str(self.platform_config.api_url).rstrip("/"),
            timeout=httpx.Timeout(30.0),
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
            headers={
                "User-Agent": f"catalog-sync/{__version__}",
                "Accept": "application/json",
            },
        )
        await self._authenticate()
        self._logger.info("Connected to platform")

    async def _authenticate(self) -> None:
        token_url = str(self.platform_config.auth_url).rstrip("/") + "/oauth/token"
        data = {"grant_type": "client_credentials"}
        if self.platform_config.scopes:
            data["scope"] = " ".join(self.platform_config.scopes)

        try:
            response = await self.http.post(
                token_url,
                data=data,
                auth=(self.platform_config.client_id, self.platform_config.client_secret),
            )
        except httpx.RequestError as e:
            raise NetworkError(f"Network error while authenticating: {e}") from e

        if response.status_code != 200:
            raise AuthenticationError(
                "Failed to obtain an access token",
                status_code=response.status_code,
                response_text=response.text,
            )
        self._access_token = response.json()["access_token"]

    async def close(self) -> None:
        """Close the HTTP connection pool."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
            self._logger.debug("Closed platform connection")

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http_client is None:
            raise RuntimeError("Client not connected. Call connect() first.")
        return self._http_client

    async def health_check(self) -> dict[str, Any]:
        """Fetch the project settings to verify connectivity and credentials.

        Returns:
            Dictionary with health check results.
        """
        project = await self.with_retry(
            "health_check", lambda: self._request("GET", "")
        )
        return {
            "status": "healthy",
            "project_key": project.get("key", self.project_key),
            "name": project.get("name"),
        }

    async def with_retry(self, operation_name: str, coro_func):
        """Execute a coroutine function, retrying transient failures.

        Args:
            operation_name: Human-readable name for the operation.
            coro_func: Callable that returns a fresh coroutine for each attempt.

        Returns:
            Result of the coroutine.

        Raises:
            APIError: If the operation fails with a non-transient error or all
                retry attempts fail.
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.sync_config.retry_attempts + 1),
            wait=wait_exponential(multiplier=self.sync_config.retry_delay, max=30.0),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            reraise=True,
        ):
            with attempt:
                try:
                    return await coro_func()
                except TRANSIENT_ERRORS as e:
                    self._logger.warning(
                        "Operation failed, will retry",
                        operation=operation_name,
                        attempt=attempt.retry_state.attempt_number,
                        error=str(e),
                    )
                    raise

    async def _request(
        self,
        method: str,
        path: str,
        params: Any = None,
        json_data: Any = None,
    ) -> dict[str, Any]:
        """Send one request to the project API and map error statuses.

        Raises:
            APIError: One of its subclasses, depending on the status code.
        """
        url = f"/{self.project_key}/{path.lstrip('/')}".rstrip("/")
        headers = {}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"

        self._request_count += 1
        try:
            response = await self.http.request(
                method, url, params=params, json=json_data, headers=headers
            )
        except httpx.RequestError as e:
            self._error_count += 1
            raise NetworkError(f"Network error: {e}") from e

        self._logger.debug(
            "API request completed",
            method=method,
            path=url,
            status_code=response.status_code,
        )

        if response.is_success:
            return response.json() if response.content else {}

        self._error_count += 1
        status = response.status_code
        text = response.text
        if status == 400:
            raise BadRequestError("Bad request", status_code=status, response_text=text)
        if status == 401:
            raise AuthenticationError(
                "Authentication failed", status_code=status, response_text=text
            )
        if status == 404:
            raise ResourceNotFoundError(
                "Resource not found", status_code=status, response_text=text
            )
        if status == 409:
            raise ConcurrentModificationError(
                "Concurrent modification", status_code=status, response_text=text
            )
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                "Rate limit exceeded",
                status_code=status,
                response_text=text,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if status in (502, 503, 504):
            raise GatewayError(f"Gateway error: {status}", status_code=status, response_text=text)
        if 400 <= status < 500:
            raise ClientError(f"Client error: {status}", status_code=status, response_text=text)
        if 500 <= status < 600:
            raise ServerError(f"Server error: {status}", status_code=status, response_text=text)
        raise APIError(f"Unexpected status code: {status}", status_code=status, response_text=text)

    async def query(
        self, endpoint: str, where: list[str] | None = None, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """Fetch every resource matching the predicates, paging by ascending id.

        Args:
            endpoint: REST endpoint, e.g. ``states``.
            where: Query predicates, combined with ``and``.
            limit: Page size, defaults to the configured page size.

        Returns:
            All matching resources.
        """
        page_size = limit or self.sync_config.page_size
        results: list[dict[str, Any]] = []
        last_id: str | None = None

        while True:
            predicates = list(where or [])
            if last_id is not None:
                predicates.append(f"id > {json.dumps(last_id)}")
            params: list[tuple[str, Any]] = [
                ("limit", page_size),
                ("sort", "id asc"),
                ("withTotal", "false"),
            ]
            params.extend(("where", p) for p in predicates)

            page = await self.with_retry(
                f"query {endpoint}",
                lambda params=params: self._request("GET", endpoint, params=params),
            )
            items = page.get("results", [])
            results.extend(items)
            if len(items) < page_size:
                return results
            last_id = items[-1]["id"]

    async def lookup_ids(self, type_id: str, keys: Iterable[str]) -> dict[str, str]:
        """Resolve keys of one resource type to ids.

        Returns:
            Mapping of key to id for the keys that exist.
        """
        keys = list(keys)
        if not keys:
            return {}
        resources = await self.query(endpoint_for(type_id), [key_in_predicate(keys)])
        return {r["key"]: r["id"] for r in resources if r.get("key")}

    async def fetch_by_keys(
        self, endpoint: str, keys: Iterable[str]
    ) -> list[dict[str, Any]]:
        keys = list(keys)
        if not keys:
            return []
        return await self.query(endpoint, [key_in_predicate(keys)])

    async def fetch_by_key(self, endpoint: str, key: str) -> dict[str, Any] | None:
        """Fetch one resource by key, or None if it does not exist."""
        try:
            return await self.with_retry(
                f"fetch {endpoint}",
                lambda: self._request("GET", f"{endpoint}/key={key}"),
            )
        except ResourceNotFoundError:
            return None

    async def create(self, endpoint: str, draft: dict[str, Any]) -> dict[str, Any]:
        return await self.with_retry(
            f"create {endpoint}",
            lambda: self._request("POST", endpoint, json_data=draft),
        )

    async def update(
        self,
        endpoint: str,
        resource_id: str,
        version: int,
        actions: list[dict[str, Any]],
    ) -> dict[str, Any]:
        """Apply update actions to a resource at the given version.

        Raises:
            ConcurrentModificationError: If the version is stale.
        """
        return await self.with_retry(
            f"update {endpoint}",
            lambda: self._request(
                "POST",
                f"{endpoint}/{resource_id}",
                json_data={"version": version, "actions": actions},
            ),
        )

    async def upsert_custom_object(
        self, container: str, key: str, value: Any
    ) -> dict[str, Any]:
        return await self.with_retry(
            "upsert custom object",
            lambda: self._request(
                "POST",
                "custom-objects",
                json_data={"container": container, "key": key, "value": value},
            ),
        )

    async def fetch_custom_objects(
        self, container: str, keys: Iterable[str]
    ) -> list[dict[str, Any]]:
        keys = list(keys)
        if not keys:
            return []
        return await self.query(
            "custom-objects",
            [f"container = {json.dumps(container)}", key_in_predicate(keys)],
        )

    async def query_custom_objects(
        self, container: str, where: list[str] | None = None
    ) -> list[dict[str, Any]]:
        return await self.query(
            "custom-objects", [f"container = {json.dumps(container)}", *(where or [])]
        )

    async def delete_custom_object(
        self, container: str, key: str
    ) -> dict[str, Any] | None:
        """Delete a custom object, returning None if it was already gone."""
        try:
            return await self.with_retry(
                "delete custom object",
                lambda: self._request("DELETE", f"custom-objects/{container}/{key}"),
            )
        except ResourceNotFoundError:
            return None

    def get_stats(self) -> dict[str, Any]:
        return {
            "request_count": self._request_count,
            "error_count": self._error_count,
            "error_rate": self._error_count / max(self._request_count, 1),
        }
