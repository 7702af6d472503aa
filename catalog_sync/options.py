"""Runtime sync options: sizes plus the user supplied callbacks and hooks."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from catalog_sync.config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CACHE_SIZE,
    DEFAULT_PAGE_SIZE,
    SyncConfig,
)

ErrorCallback = Callable[[str, Exception | None, Any, Any, list | None], None]
WarningCallback = Callable[[str, Any, Any], None]
BeforeCreateHook = Callable[[Any], Any]
BeforeUpdateHook = Callable[[list, Any, Any], list | None]


@dataclass(frozen=True, slots=True)
class SyncOptions:
    """Immutable options shared by every stage of a sync run.

    Callbacks are invoked synchronously at the point of failure:

    - ``error_callback(message, cause, old_resource, new_draft, actions)``
    - ``warning_callback(message, new_draft, old_resource)``
    - ``before_create(draft)`` returns the draft to create, or None to skip it
    - ``before_update(actions, new_draft, old_resource)`` returns the actions to
      send; None or an empty list skips the update
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    cache_size: int = DEFAULT_CACHE_SIZE
    page_size: int = DEFAULT_PAGE_SIZE
    max_concurrent: int = 10
    allow_uuid_keys: bool = False
    ensure_channels: bool = False
    error_callback: ErrorCallback | None = None
    warning_callback: WarningCallback | None = None
    before_create: BeforeCreateHook | None = None
    before_update: BeforeUpdateHook | None = None

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            object.__setattr__(self, "batch_size", DEFAULT_BATCH_SIZE)
        if self.cache_size <= 0:
            object.__setattr__(self, "cache_size", DEFAULT_CACHE_SIZE)
        if self.page_size <= 0:
            object.__setattr__(self, "page_size", DEFAULT_PAGE_SIZE)
        if self.max_concurrent <= 0:
            object.__setattr__(self, "max_concurrent", 1)

    @classmethod
    def from_config(cls, config: SyncConfig, **callbacks: Any) -> "SyncOptions":
        """Build options from a SyncConfig plus optional callbacks and hooks."""
        return cls(
            batch_size=config.batch_size,
            cache_size=config.cache_size,
            page_size=config.page_size,
            max_concurrent=config.max_concurrent,
            allow_uuid_keys=config.allow_uuid_keys,
            ensure_channels=config.ensure_channels,
            **callbacks,
        )

    def apply_error_callback(
        self,
        message: str,
        cause: Exception | None = None,
        old_resource: Any = None,
        new_draft: Any = None,
        actions: list | None = None,
    ) -> None:
        if self.error_callback is not None:
            self.error_callback(message, cause, old_resource, new_draft, actions)

    def apply_warning_callback(
        self, message: str, new_draft: Any = None, old_resource: Any = None
    ) -> None:
        if self.warning_callback is not None:
            self.warning_callback(message, new_draft, old_resource)

    def apply_before_create(self, draft: Any) -> Any:
        if self.before_create is None:
            return draft
        return self.before_create(draft)

    def apply_before_update(
        self, actions: list, new_draft: Any, old_resource: Any
    ) -> list:
        if not actions or self.before_update is None:
            return actions
        return self.before_update(actions, new_draft, old_resource) or []
