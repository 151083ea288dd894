"""Keyed cache for list views fetched from the ledger.

Entries are keyed by a tuple whose first element names the view, e.g.
``("vendor-bills", "open")``. Invalidating a view name drops every entry
under it, so the next read goes back to the ledger.
"""

from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

VENDOR_BILLS = "vendor-bills"
QUICKBOOKS_SYNC_LOGS = "quickbooks-sync-logs"
QUICKBOOKS_BILL_MAPPINGS = "quickbooks-bill-mappings"

# Views touched by a bulk edit or a bulk sync.
BILL_VIEWS = (VENDOR_BILLS, QUICKBOOKS_SYNC_LOGS, QUICKBOOKS_BILL_MAPPINGS)


class QueryCache:
    """In-memory cache of fetched views, invalidated by view name."""

    def __init__(self) -> None:
        self._entries: dict[tuple[Any, ...], Any] = {}
        self._invalidation_hooks: list[Callable[[list[str]], None]] = []

    def __contains__(self, key: tuple[Any, ...]) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: tuple[Any, ...]) -> Any:
        return self._entries.get(key)

    def set(self, key: tuple[Any, ...], value: Any) -> None:
        self._entries[key] = value

    async def get_or_fetch(
        self, key: tuple[Any, ...], fetch: Callable[[], Awaitable[Any]]
    ) -> Any:
        """Return the cached value or fetch, store and return it."""
        if key in self._entries:
            return self._entries[key]
        value = await fetch()
        self._entries[key] = value
        return value

    def add_invalidation_hook(self, hook: Callable[[list[str]], None]) -> None:
        """Register a callback run with the view names after each invalidation."""
        self._invalidation_hooks.append(hook)

    def invalidate(self, views: Iterable[str]) -> int:
        """Drop every entry under the given view names.

        Returns:
            Number of entries removed.
        """
        names = list(views)
        stale = [key for key in self._entries if key and key[0] in names]
        for key in stale:
            del self._entries[key]

        logger.debug("cache_invalidated", views=names, removed=len(stale))
        for hook in self._invalidation_hooks:
            hook(names)
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
