"""Durable holding area for drafts whose references cannot be resolved yet.

Records are stored as custom objects on the target project itself, one container
per resource kind. The custom object key is the SHA-1 digest of the owner key
because custom object keys only allow ``[-_~.a-zA-Z0-9]``.
"""

import hashlib
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from pydantic import Field

from catalog_sync.cache import KeyIdCache, batch_elements
from catalog_sync.config import DEFAULT_PAGE_SIZE
from catalog_sync.exceptions import APIError
from catalog_sync.models.common import CamelModel, ReferenceKey

logger = structlog.get_logger(__name__)

CONTAINER_PREFIX = "catalog-sync.unresolved-references"


def container_for(endpoint: str) -> str:
    return f"{CONTAINER_PREFIX}.{endpoint}"


def object_key(owner_key: str) -> str:
    return hashlib.sha1(owner_key.encode("utf-8")).hexdigest()


class UnresolvedRecord(CamelModel):
    """A draft waiting for the resources behind its missing reference keys."""

    owner_key: str
    missing_reference_keys: frozenset[ReferenceKey] = Field(default_factory=frozenset)
    draft: dict[str, Any]

    def is_ready(self, is_resolved: Callable[[ReferenceKey], bool]) -> bool:
        return all(is_resolved(k) for k in self.missing_reference_keys)

    def to_value(self) -> dict[str, Any]:
        value = self.to_payload()
        # Sorted for stable documents across runs
        value["missingReferenceKeys"] = sorted(
            value["missingReferenceKeys"], key=lambda k: (k["typeId"], k["key"])
        )
        return value


@dataclass(slots=True)
class CleanupStatistics:
    total_deleted: int = 0
    total_failed: int = 0

    @property
    def report_message(self) -> str:
        return (
            f"Summary: {self.total_deleted} unresolved reference records were deleted "
            f"in total ({self.total_failed} failed to delete)."
        )


class UnresolvedReferenceStore:
    """Keyed store of UnresolvedRecords for one resource kind.

    Operations are plain remote reads and writes without locking; concurrent
    syncs writing the same owner key end with the last write.
    """

    def __init__(
        self, client, container: str, page_size: int = DEFAULT_PAGE_SIZE
    ) -> None:
        self.client = client
        self.container = container
        self.page_size = page_size
        self._logger = logger.bind(container=container)

    async def store(
        self,
        owner_key: str,
        missing_keys: Iterable[ReferenceKey],
        draft: dict[str, Any],
    ) -> UnresolvedRecord:
        """Upsert the record of an owner, merging with any pending record.

        The missing key set of an existing record is unioned with the new one
        and the stored draft is replaced by the latest one.

        Raises:
            APIError: If reading or writing the record fails.
        """
        missing = frozenset(missing_keys)
        existing = await self.fetch_pending([owner_key])
        if existing:
            missing = missing | existing[0].missing_reference_keys

        record = UnresolvedRecord(
            owner_key=owner_key, missing_reference_keys=missing, draft=draft
        )
        await self.client.upsert_custom_object(
            self.container, object_key(owner_key), record.to_value()
        )
        self._logger.debug(
            "Stored unresolved record",
            owner_key=owner_key,
            missing=sorted(str(k) for k in missing),
            merged=bool(existing),
        )
        return record

    async def fetch_pending(self, owner_keys: Iterable[str]) -> list[UnresolvedRecord]:
        """Bulk read the records of the given owners.

        Raises:
            APIError: If the read fails; callers report it per owner.
        """
        hashed = sorted({object_key(k) for k in owner_keys})
        records: list[UnresolvedRecord] = []
        for chunk in batch_elements(hashed, self.page_size):
            objects = await self.client.fetch_custom_objects(self.container, chunk)
            records.extend(UnresolvedRecord.model_validate(o["value"]) for o in objects)
        return records

    async def delete(self, owner_key: str) -> UnresolvedRecord | None:
        """Remove the record of an owner, returning it if it existed."""
        deleted = await self.client.delete_custom_object(
            self.container, object_key(owner_key)
        )
        if deleted is None:
            return None
        self._logger.debug("Deleted unresolved record", owner_key=owner_key)
        return UnresolvedRecord.model_validate(deleted["value"])

    async def fetch_records_ready_for_key(
        self, resolved_key: ReferenceKey, cache: KeyIdCache
    ) -> list[UnresolvedRecord]:
        """Return records waiting on ``resolved_key`` whose keys are now all resolvable."""
        return await self.fetch_records_ready_for_keys([resolved_key], cache)

    async def fetch_records_ready_for_keys(
        self, resolved_keys: Iterable[ReferenceKey], cache: KeyIdCache
    ) -> list[UnresolvedRecord]:
        """Batch form of fetch_records_ready_for_key.

        The server-side predicate narrows the query to records naming any of the
        keys. The other missing keys of those records are looked up through the
        cache before readiness is decided, so dependencies created by earlier
        runs count as resolved.

        Raises:
            APIError: If the query fails.
            CacheBuildError: If looking up the other missing keys fails.
        """
        resolved_keys = set(resolved_keys)
        if not resolved_keys:
            return []

        waiting: dict[str, UnresolvedRecord] = {}
        for chunk in batch_elements(sorted(resolved_keys, key=str), self.page_size):
            predicate = " or ".join(
                f'value(missingReferenceKeys(typeId = "{k.type_id}" and key = "{k.key}"))'
                for k in chunk
            )
            objects = await self.client.query_custom_objects(
                self.container, [f"({predicate})"]
            )
            for o in objects:
                record = UnresolvedRecord.model_validate(o["value"])
                if record.missing_reference_keys & resolved_keys:
                    waiting[record.owner_key] = record

        if not waiting:
            return []
        found = await cache.populate(
            k for record in waiting.values() for k in record.missing_reference_keys
        )
        return [
            waiting[k]
            for k in sorted(waiting)
            if waiting[k].is_ready(lambda key: key in found or key in cache)
        ]

    async def cleanup(self, older_than_days: int = 30) -> CleanupStatistics:
        """Delete records not modified in the last ``older_than_days`` days."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
        statistics = CleanupStatistics()
        objects = await self.client.query_custom_objects(
            self.container,
            [f'lastModifiedAt < "{cutoff.strftime("%Y-%m-%dT%H:%M:%S.000Z")}"'],
        )
        for o in objects:
            try:
                await self.client.delete_custom_object(self.container, o["key"])
                statistics.total_deleted += 1
            except APIError as e:
                statistics.total_failed += 1
                self._logger.error(
                    "Failed to delete unresolved record", key=o["key"], error=str(e)
                )
        self._logger.info(
            "Cleaned up unresolved records",
            older_than_days=older_than_days,
            deleted=statistics.total_deleted,
            failed=statistics.total_failed,
        )
        return statistics
