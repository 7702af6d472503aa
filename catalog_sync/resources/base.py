"""Base class driving drafts of one resource kind through the sync pipeline."""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Iterable
from enum import Enum
from typing import Any, ClassVar, Generic, TypeVar

import pydantic
import structlog

from catalog_sync.cache import KeyIdCache, batch_elements
from catalog_sync.diff import DiffEngine, UpdateAction
from catalog_sync.exceptions import (
    APIError,
    BuildUpdateActionError,
    CacheBuildError,
    ConcurrentModificationError,
    ConflictRetryExhausted,
    ReferenceResolutionError,
    RemoteCallError,
    SyncError,
)
from catalog_sync.models.common import ReferenceKey, Resource, ResourceDraft
from catalog_sync.options import SyncOptions
from catalog_sync.resolution import ReferenceResolver, ResolutionContext
from catalog_sync.statistics import SyncStatistics
from catalog_sync.unresolved import UnresolvedReferenceStore, container_for
from catalog_sync.validation import BatchValidator

logger = structlog.get_logger(__name__)

DraftT = TypeVar("DraftT", bound=ResourceDraft)
ResourceT = TypeVar("ResourceT", bound=Resource)


class UpdateAttempt(Enum):
    """Position of one draft in the update-with-single-retry protocol."""

    FIRST_ATTEMPT = "first_attempt"
    RETRY_AFTER_REFETCH = "retry_after_refetch"


def _chained(error: SyncError, cause: Exception) -> SyncError:
    error.__cause__ = cause
    return error


class ResourceSync(ABC, Generic[DraftT, ResourceT]):
    """Converges the target's resources of one kind toward a list of drafts.

    Per draft: validate, resolve references (or defer the draft to the
    unresolved store), then create it or diff and update the existing resource.
    Drafts are processed in chunks of ``batch_size`` with at most
    ``max_concurrent`` chunks in flight. After each chunk, deferred drafts whose
    references became resolvable are replayed.

    Subclasses provide the kind's metadata, validator, diff engine and reference
    rewriting.
    """

    resource_name: ClassVar[str]
    type_id: ClassVar[str]
    endpoint: ClassVar[str]
    resource_model: ClassVar[type[Resource]]
    validator_class: ClassVar[type[BatchValidator]]
    diff_engine: ClassVar[DiffEngine]

    def __init__(
        self,
        client,
        options: SyncOptions | None = None,
        cache: KeyIdCache | None = None,
        store: UnresolvedReferenceStore | None = None,
    ) -> None:
        """Initialize the sync.

        Args:
            client: Platform client used for every remote call.
            options: Sizes, callbacks and hooks.
            cache: Key to id cache; pass one instance to share it across syncs.
            store: Unresolved reference store; defaults to this kind's container.
        """
        self.client = client
        self.options = options if options is not None else SyncOptions()
        if cache is None:
            cache = KeyIdCache(client, self.options.cache_size, self.options.page_size)
        self.cache = cache
        if store is None:
            store = UnresolvedReferenceStore(
                client, container_for(self.endpoint), self.options.page_size
            )
        self.store = store
        self.validator = self.validator_class(self.options)
        self.resolver = ReferenceResolver(self.cache)
        self.statistics = SyncStatistics(self.resource_name)
        self._cancelled = False
        self._deferred_keys: set[str] = set()
        self._replayed_keys: set[str] = set()
        self._latest: dict[str, ResourceT] = {}
        self._key_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._logger = logger.bind(
            sync=self.__class__.__name__, resource_type=self.type_id
        )

    @property
    def draft_type_name(self) -> str:
        return self.validator.draft_type_name

    @abstractmethod
    def resolve_references(self, draft: DraftT, context: ResolutionContext) -> DraftT:
        """Return a copy of the draft with its references rewritten through the context."""

    def build_actions(self, old: ResourceT, new: DraftT) -> list[UpdateAction]:
        """Diff an existing resource against a resolved draft, reporting warnings."""
        return self.diff_engine.diff(
            old, new, report=lambda message: self._handle_warning(message, new, old)
        )

    def cancel(self) -> None:
        """Stop starting new chunks; chunks already running finish normally."""
        self._cancelled = True
        self._logger.warning("Sync cancellation requested")

    async def sync(self, drafts: Iterable[Any]) -> SyncStatistics:
        """Sync a list of drafts into the target project.

        Args:
            drafts: Draft models or mappings; None elements are reported as errors.

        Returns:
            Statistics of this call.
        """
        drafts = list(drafts)
        self.statistics = SyncStatistics(self.resource_name)
        self._cancelled = False
        self._deferred_keys = set()
        self._replayed_keys = set()
        self._latest = {}

        batches = batch_elements(drafts, self.options.batch_size)
        self._logger.info(
            "Starting sync",
            drafts=len(drafts),
            batches=len(batches),
            batch_size=self.options.batch_size,
        )

        semaphore = asyncio.Semaphore(self.options.max_concurrent)

        async def run_batch(batch_number: int, batch: list) -> None:
            async with semaphore:
                if self._cancelled:
                    self._logger.warning(
                        "Skipping batch after cancellation", batch=batch_number
                    )
                    return
                await self._process_batch(batch)
                self._logger.debug(
                    "Processed batch", batch=batch_number, batch_size=len(batch)
                )

        await asyncio.gather(
            *(run_batch(number, batch) for number, batch in enumerate(batches, 1))
        )

        self.statistics.finish()
        self._logger.info(
            self.statistics.report_message,
            processed=self.statistics.processed,
            created=self.statistics.created,
            updated=self.statistics.updated,
            failed=self.statistics.failed,
            unresolved=self.statistics.unresolved,
        )
        return self.statistics

    async def _process_batch(self, batch: list) -> None:
        result = self.validator.validate(batch)
        self.statistics.increment_processed(len(batch))
        for error, raw in result.errors:
            self._handle_error(error.message, error, new_draft=raw)

        if not result.valid_drafts:
            return
        synced_keys = await self._sync_valid_drafts(
            result.valid_drafts, result.keys_to_cache
        )
        await self._replay_ready(synced_keys)

    async def _sync_valid_drafts(
        self, drafts: list[DraftT], keys_to_cache: set[ReferenceKey]
    ) -> set[str]:
        """Sync validated drafts and return the keys that now exist on the target."""
        try:
            known = await self.cache.populate(keys_to_cache)
        except CacheBuildError as e:
            for draft in drafts:
                self._handle_error(e.message, e, new_draft=draft)
            return set()

        keys = [d.key for d in drafts]
        try:
            pending = {r.owner_key for r in await self.store.fetch_pending(keys)}
        except APIError as e:
            for draft in drafts:
                self._handle_error(
                    f"Failed to fetch unresolved reference records of "
                    f"{self.draft_type_name} with key: '{draft.key}'. Reason: {e}",
                    e,
                    new_draft=draft,
                )
            return set()

        try:
            existing = await self._fetch_existing(keys)
        except APIError as e:
            message = f"Failed to fetch existing {self.resource_name} with keys: '{sorted(set(keys))}'."
            for draft in drafts:
                self._handle_error(message, e, new_draft=draft)
            return set()

        outcomes = await asyncio.gather(
            *(
                self._sync_draft(d, existing.get(d.key), d.key in pending, known)
                for d in drafts
            )
        )
        return {d.key for d, synced in zip(drafts, outcomes) if synced}

    async def _fetch_existing(self, keys: list[str]) -> dict[str, ResourceT]:
        resources = await self.client.fetch_by_keys(self.endpoint, sorted(set(keys)))
        existing = {}
        for raw in resources:
            resource = self.resource_model.model_validate(raw)
            existing[resource.key] = resource
            self.cache.put(ReferenceKey(type_id=self.type_id, key=resource.key), resource.id)
        return existing

    async def _sync_draft(
        self,
        draft: DraftT,
        existing: ResourceT | None,
        has_pending_record: bool,
        known: dict[ReferenceKey, str] | None = None,
    ) -> bool:
        async with self._key_locks[draft.key]:
            try:
                return await self._sync_locked(
                    draft, existing, has_pending_record, known or {}
                )
            except Exception as e:
                self._handle_error(
                    f"Failed to sync {self.draft_type_name} with key: '{draft.key}'. "
                    f"Reason: {e}",
                    e,
                    new_draft=draft,
                )
                return False

    async def _sync_locked(
        self,
        draft: DraftT,
        existing: ResourceT | None,
        has_pending_record: bool,
        known: dict[ReferenceKey, str],
    ) -> bool:
        existing = self._latest.get(draft.key, existing)
        try:
            resolved = await self._resolve(draft, known)
        except ReferenceResolutionError as e:
            await self._defer(draft, e)
            return False
        except SyncError as e:
            self._handle_error(e.message, e, new_draft=draft)
            return False

        if existing is None:
            resource = await self._create(resolved)
        else:
            resource = await self._update(existing, resolved)
        if resource is None:
            return False

        self._latest[draft.key] = resource
        self.cache.put(ReferenceKey(type_id=self.type_id, key=draft.key), resource.id)
        if draft.key in self._deferred_keys:
            self._deferred_keys.discard(draft.key)
            self.statistics.decrement_unresolved()
        if has_pending_record:
            await self._delete_record(draft)
        return True

    async def _resolve(self, draft: DraftT, known: dict[ReferenceKey, str]) -> DraftT:
        try:
            return self.resolver.resolve(draft, self.resolve_references, known)
        except ReferenceResolutionError as e:
            created = await self.create_missing_references(draft, e.missing_keys)
            if not created:
                raise
        return self.resolver.resolve(
            draft, self.resolve_references, {**known, **created}
        )

    async def create_missing_references(
        self, draft: DraftT, missing_keys: frozenset[ReferenceKey]
    ) -> dict[ReferenceKey, str]:
        """Create referenced resources this kind may create on demand.

        Returns the ids of the created resources; empty when the draft has to
        wait for its references instead.
        """
        return {}

    async def _create(self, draft: DraftT) -> ResourceT | None:
        to_create = self.options.apply_before_create(draft)
        if to_create is None:
            self._logger.debug("Create skipped by before_create hook", key=draft.key)
            return None

        try:
            created = await self.client.create(self.endpoint, to_create.to_payload())
        except APIError as e:
            error = RemoteCallError(
                f"Failed to create {self.draft_type_name} with key: '{draft.key}'. Reason: {e}",
                draft.key,
            )
            self._handle_error(error.message, _chained(error, e), new_draft=to_create)
            return None

        self.statistics.increment_created()
        self._logger.debug("Created resource", key=draft.key)
        return self.resource_model.model_validate(created)

    async def _update(self, existing: ResourceT, draft: DraftT) -> ResourceT | None:
        """Update with at most one refetch-and-retry after a version conflict.

        Returns the resulting resource (the unchanged one when there is nothing to
        update or the hook vetoed the update) or None when the draft failed.
        """
        attempt = UpdateAttempt.FIRST_ATTEMPT
        current = existing

        while True:
            try:
                actions = self.build_actions(current, draft)
            except BuildUpdateActionError as e:
                self._handle_error(
                    f"Failed to build update actions for {self.draft_type_name} with "
                    f"key: '{draft.key}'. Reason: {e.message}",
                    e,
                    old_resource=current,
                    new_draft=draft,
                )
                return None

            actions = self.options.apply_before_update(actions, draft, current)
            if not actions:
                return current

            try:
                updated = await self.client.update(
                    self.endpoint,
                    current.id,
                    current.version,
                    [a.to_dict() for a in actions],
                )
            except ConcurrentModificationError as e:
                if attempt is UpdateAttempt.RETRY_AFTER_REFETCH:
                    error = ConflictRetryExhausted(
                        f"Failed to update {self.draft_type_name} with key: '{draft.key}'. "
                        "Reason: Concurrent modification persisted after retry.",
                        ConflictRetryExhausted.CONFLICT,
                        draft.key,
                    )
                    self._handle_error(
                        error.message, _chained(error, e), current, draft, actions
                    )
                    return None
                attempt = UpdateAttempt.RETRY_AFTER_REFETCH
                self._logger.info(
                    "Version conflict, refetching before retry",
                    key=draft.key,
                    version=current.version,
                )
                current = await self._refetch(draft, current, actions)
                if current is None:
                    return None
                continue
            except APIError as e:
                error = RemoteCallError(
                    f"Failed to update {self.draft_type_name} with key: '{draft.key}'. Reason: {e}",
                    draft.key,
                )
                self._handle_error(error.message, _chained(error, e), current, draft, actions)
                return None

            self.statistics.increment_updated()
            self._logger.debug(
                "Updated resource", key=draft.key, actions=len(actions), attempt=attempt.value
            )
            return self.resource_model.model_validate(updated)

    async def _refetch(
        self, draft: DraftT, stale: ResourceT, actions: list[UpdateAction]
    ) -> ResourceT | None:
        try:
            fetched = await self.client.fetch_by_key(self.endpoint, draft.key)
        except APIError as e:
            error = ConflictRetryExhausted(
                f"Failed to update {self.draft_type_name} with key: '{draft.key}'. "
                "Reason: Fetch failed on retry after concurrency modification.",
                ConflictRetryExhausted.FETCH_FAILED,
                draft.key,
            )
            self._handle_error(error.message, _chained(error, e), stale, draft, actions)
            return None

        if fetched is None:
            error = ConflictRetryExhausted(
                f"Failed to update {self.draft_type_name} with key: '{draft.key}'. "
                "Reason: Not found while retrying after concurrency modification.",
                ConflictRetryExhausted.NOT_FOUND,
                draft.key,
            )
            self._handle_error(error.message, error, stale, draft, actions)
            return None
        return self.resource_model.model_validate(fetched)

    async def _defer(self, draft: DraftT, error: ReferenceResolutionError) -> None:
        try:
            await self.store.store(draft.key, error.missing_keys, draft.to_payload())
        except APIError as e:
            self._handle_error(
                f"Failed to persist unresolved references of {self.draft_type_name} "
                f"with key: '{draft.key}'. Reason: {e}",
                e,
                new_draft=draft,
            )
            return

        if draft.key not in self._deferred_keys:
            self._deferred_keys.add(draft.key)
            self.statistics.increment_unresolved()
        self._logger.info(
            "Deferred draft with missing references",
            key=draft.key,
            missing=sorted(str(k) for k in error.missing_keys),
        )

    async def _delete_record(self, draft: DraftT) -> None:
        try:
            await self.store.delete(draft.key)
        except APIError as e:
            message = (
                f"Failed to delete unresolved reference record of {self.draft_type_name} "
                f"with key: '{draft.key}'. Reason: {e}"
            )
            self._logger.error(message)
            self.statistics.record_error_message(message)
            self.options.apply_error_callback(message, e, None, draft, None)

    async def _replay_ready(self, synced_keys: set[str]) -> None:
        """Replay deferred drafts whose missing keys were just created or updated."""
        resolved = {ReferenceKey(type_id=self.type_id, key=k) for k in synced_keys}
        while resolved and not self._cancelled:
            try:
                records = await self.store.fetch_records_ready_for_keys(
                    resolved, self.cache
                )
            except (APIError, CacheBuildError) as e:
                message = (
                    f"Failed to fetch unresolved reference records ready for keys: "
                    f"{sorted(str(k) for k in resolved)}. Reason: {e}"
                )
                self._logger.error(message)
                self.statistics.record_error_message(message)
                self.options.apply_error_callback(message, e, None, None, None)
                return

            records = [r for r in records if r.owner_key not in self._replayed_keys]
            if not records:
                return
            self._replayed_keys.update(r.owner_key for r in records)

            drafts = []
            for record in records:
                try:
                    drafts.append(self.validator.draft_model.model_validate(record.draft))
                except pydantic.ValidationError as e:
                    self._handle_error(
                        f"Failed to parse stored {self.draft_type_name} with key: "
                        f"'{record.owner_key}'. Reason: {e}",
                        e,
                        new_draft=record.draft,
                    )
            if not drafts:
                return

            self._logger.info(
                "Replaying drafts with resolvable references",
                keys=[d.key for d in drafts],
            )
            result = self.validator.validate(drafts)
            for error, raw in result.errors:
                self._handle_error(error.message, error, new_draft=raw)
            synced = await self._sync_valid_drafts(
                result.valid_drafts, result.keys_to_cache
            )
            resolved = {ReferenceKey(type_id=self.type_id, key=k) for k in synced}

    def _handle_error(
        self,
        message: str,
        cause: Exception | None = None,
        old_resource: Any = None,
        new_draft: Any = None,
        actions: list[UpdateAction] | None = None,
    ) -> None:
        self._logger.error(
            message,
            error_type=type(cause).__name__ if cause is not None else None,
        )
        self.statistics.record_failure(message)
        self.options.apply_error_callback(message, cause, old_resource, new_draft, actions)

    def _handle_warning(self, message: str, new_draft: Any, old_resource: Any) -> None:
        self._logger.warning(message, key=getattr(new_draft, "key", None))
        self.statistics.record_warning(message)
        self.options.apply_warning_callback(message, new_draft, old_resource)
