"""Bounded key to id cache populated with batched lookups."""

import asyncio
from collections import OrderedDict, defaultdict
from collections.abc import Iterable

import structlog

from catalog_sync.config import DEFAULT_CACHE_SIZE, DEFAULT_PAGE_SIZE
from catalog_sync.exceptions import APIError, CacheBuildError
from catalog_sync.models.common import ReferenceKey

logger = structlog.get_logger(__name__)

CACHE_BUILD_ERROR_MESSAGE = "Failed to build a cache of keys to ids."


def batch_elements(elements: list, batch_size: int) -> list[list]:
    """Split a list into consecutive chunks of at most ``batch_size`` elements."""
    return [elements[i : i + batch_size] for i in range(0, len(elements), batch_size)]


class KeyIdCache:
    """Least-recently-used mapping of (type id, key) to platform id, and back.

    One instance is passed explicitly to every sync that should share it. Lookups
    for keys that are already cached are skipped; concurrent ``populate`` calls for
    the same keys are tolerated and simply write the same entries twice.
    """

    def __init__(
        self,
        client,
        max_size: int = DEFAULT_CACHE_SIZE,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.client = client
        self.max_size = max_size if max_size > 0 else DEFAULT_CACHE_SIZE
        self.page_size = page_size if page_size > 0 else DEFAULT_PAGE_SIZE
        self._ids: OrderedDict[ReferenceKey, str] = OrderedDict()
        self._keys: dict[tuple[str, str], str] = {}
        self._logger = logger.bind(max_size=self.max_size)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, reference_key: ReferenceKey) -> bool:
        return reference_key in self._ids

    def get(self, reference_key: ReferenceKey) -> str | None:
        resource_id = self._ids.get(reference_key)
        if resource_id is not None:
            self._ids.move_to_end(reference_key)
        return resource_id

    def get_key(self, type_id: str, resource_id: str) -> str | None:
        """Reverse lookup of a key by id."""
        return self._keys.get((type_id, resource_id))

    def put(self, reference_key: ReferenceKey, resource_id: str) -> None:
        previous = self._ids.pop(reference_key, None)
        if previous is not None:
            self._keys.pop((reference_key.type_id, previous), None)
        self._ids[reference_key] = resource_id
        self._keys[(reference_key.type_id, resource_id)] = reference_key.key

        while len(self._ids) > self.max_size:
            evicted_key, evicted_id = self._ids.popitem(last=False)
            self._keys.pop((evicted_key.type_id, evicted_id), None)

    def clear(self) -> None:
        self._ids.clear()
        self._keys.clear()

    async def populate(
        self, reference_keys: Iterable[ReferenceKey]
    ) -> dict[ReferenceKey, str]:
        """Look up every uncached key and merge the results into the cache.

        Keys that do not exist on the platform are simply absent from the result.
        The result is built from the lookups themselves, so it still holds keys the
        LRU bound evicted again while merging a large chunk.

        Args:
            reference_keys: Keys to make available.

        Returns:
            Mapping of every requested key found (cached or fetched) to its id.

        Raises:
            CacheBuildError: If any batched lookup fails.
        """
        requested = set(reference_keys)
        found: dict[ReferenceKey, str] = {}
        by_type: dict[str, list[str]] = defaultdict(list)
        for reference_key in requested:
            resource_id = self._ids.get(reference_key)
            if resource_id is None:
                by_type[reference_key.type_id].append(reference_key.key)
            else:
                found[reference_key] = resource_id

        lookups = [
            self._lookup(type_id, chunk)
            for type_id, keys in by_type.items()
            for chunk in batch_elements(sorted(keys), self.page_size)
        ]
        if lookups:
            self._logger.debug(
                "Populating key to id cache",
                keys=sum(len(k) for k in by_type.values()),
                lookups=len(lookups),
            )
            try:
                results = await asyncio.gather(*lookups)
            except APIError as e:
                self._logger.error(CACHE_BUILD_ERROR_MESSAGE, error=str(e))
                raise CacheBuildError(CACHE_BUILD_ERROR_MESSAGE) from e

            for type_id, ids in results:
                for key, resource_id in ids.items():
                    reference_key = ReferenceKey(type_id=type_id, key=key)
                    self.put(reference_key, resource_id)
                    found[reference_key] = resource_id

        return found

    async def _lookup(self, type_id: str, keys: list[str]) -> tuple[str, dict[str, str]]:
        return type_id, await self.client.lookup_ids(type_id, keys)
