"""
Filter-State Controller
Owns the current FilterState and combination mode, persists them, and
propagates changes downstream through a debounce window.
"""
import asyncio
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError as ModelValidationError

from photo_discovery.config import Settings, settings as default_settings
from photo_discovery.errors import PhotoDiscoveryError
from photo_discovery.models.filters import CombinationMode, FilterSnapshot, FilterState
from photo_discovery.models.search import SearchResult
from photo_discovery.services.concurrency import Debouncer, RequestTokens, call_maybe_async
from photo_discovery.services.photo_index import IndexHandle
from photo_discovery.services.search_engine import SearchEngine
from photo_discovery.services.store import JsonFileStore, KeyValueStore, ObservableStore
import logging

logger = logging.getLogger(__name__)


def serialize_snapshot(snapshot: FilterSnapshot) -> str:
    return snapshot.model_dump_json()


def deserialize_snapshot(raw: str) -> FilterSnapshot:
    return FilterSnapshot.model_validate_json(raw)


class FilterStateController:
    """
    Filter state with debounced downstream propagation

    set_filters() and the combination-mode setters commit immediately and
    schedule one propagation per debounce window carrying only the latest
    state. clear() cancels anything pending and propagates at once.

    Args:
        settings: Debounce window and persistence key
        storage: Durable key-value slot; state is restored from it on construction
        debounce_ms: Overrides settings.debounce_ms
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        storage: Optional[KeyValueStore] = None,
        debounce_ms: Optional[int] = None,
    ):
        self.settings = settings or default_settings
        if storage is None and self.settings.filter_state_path:
            storage = JsonFileStore(self.settings.filter_state_path)
        self.storage = storage
        self.storage_key = self.settings.filter_state_key

        delay_ms = debounce_ms if debounce_ms is not None else self.settings.debounce_ms
        self._debouncer: Debouncer[FilterSnapshot] = Debouncer(self._dispatch, delay_ms / 1000.0)
        self._listeners: List[Callable[[FilterSnapshot], Any]] = []

        self._store: ObservableStore[FilterSnapshot] = ObservableStore(self._restore())
        if self.storage is not None:
            self._store.subscribe(self._persist)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _restore(self) -> FilterSnapshot:
        if self.storage is None:
            return FilterSnapshot()
        try:
            raw = self.storage.get(self.storage_key)
            if raw is None:
                return FilterSnapshot()
            snapshot = deserialize_snapshot(raw)
        except (ValueError, ModelValidationError, OSError) as e:
            logger.debug(f"Discarding unreadable persisted filter state: {e}")
            return FilterSnapshot()
        logger.debug(f"Restored filter state with {len(snapshot.filters.populated_fields())} active filters")
        return snapshot

    def _persist(self, snapshot: FilterSnapshot):
        self.storage.set(self.storage_key, serialize_snapshot(snapshot))

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> FilterSnapshot:
        return self._store.state

    @property
    def filters(self) -> FilterState:
        return self._store.state.filters

    @property
    def combination_mode(self) -> CombinationMode:
        return self._store.state.combination_mode

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    def set_filters(self, partial: Union[FilterState, Dict[str, Any]]) -> FilterState:
        """
        Merge ``partial`` into the current filters and schedule propagation

        Args:
            partial: Category dict or FilterState; only named fields change

        Returns:
            The merged FilterState
        """
        filters = self.filters.merge(partial)
        self._commit(FilterSnapshot(filters=filters, combination_mode=self.combination_mode))
        return filters

    def toggle_combination_mode(self) -> CombinationMode:
        mode = CombinationMode.OR if self.combination_mode == CombinationMode.AND else CombinationMode.AND
        return self.set_combination_mode(mode)

    def set_combination_mode(self, mode: Union[CombinationMode, str]) -> CombinationMode:
        mode = CombinationMode(mode)
        if mode != self.combination_mode:
            self._commit(FilterSnapshot(filters=self.filters, combination_mode=mode))
        return mode

    async def clear(self):
        """Reset to the empty state and propagate immediately"""
        if self._debouncer.cancel():
            logger.debug("Pending filter propagation cancelled by clear()")
        snapshot = FilterSnapshot(combination_mode=self.combination_mode)
        self._store.set(snapshot)
        await self._dispatch(snapshot)

    def _commit(self, snapshot: FilterSnapshot):
        self._store.set(snapshot)
        self._debouncer.call(snapshot)

    # ------------------------------------------------------------------
    # Propagation
    # ------------------------------------------------------------------

    def subscribe(self, listener: Callable[[FilterSnapshot], Any]) -> Callable[[], None]:
        """
        Register a downstream listener (sync or async)

        Returns:
            Callable that unsubscribes the listener
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _dispatch(self, snapshot: FilterSnapshot):
        logger.debug(f"Propagating filter state (mode={snapshot.combination_mode.value})")
        for listener in list(self._listeners):
            try:
                await call_maybe_async(listener, snapshot)
            except Exception as e:
                # Listeners are isolated from each other
                logger.error(f"Filter listener {listener!r} failed: {e}", exc_info=True)

    async def flush(self) -> bool:
        """Propagate a pending change now; returns False if nothing was pending"""
        return await self._debouncer.flush()

    async def wait(self):
        """Wait for the pending debounced propagation to run"""
        await self._debouncer.wait()

    def close(self):
        self._debouncer.cancel()
        self._listeners.clear()


class LiveSearch:
    """
    Runs a search for every propagated filter state

    Each run takes a fresh request token; a result whose token is no longer
    the newest when it completes is discarded (last request wins). A search
    that fails (timeout, required results missing) is kept as
    ``latest_error`` and handed to ``on_error`` instead of escaping into the
    debounce timer.
    """

    def __init__(
        self,
        controller: FilterStateController,
        engine: SearchEngine,
        index_handle: IndexHandle,
        on_results: Optional[Callable[[SearchResult], Any]] = None,
        on_error: Optional[Callable[[PhotoDiscoveryError], Any]] = None,
    ):
        self.engine = engine
        self.index_handle = index_handle
        self.on_results = on_results
        self.on_error = on_error
        self.tokens = RequestTokens()
        self.latest_result: Optional[SearchResult] = None
        self.latest_error: Optional[PhotoDiscoveryError] = None
        self.discarded = 0
        self._unsubscribe = controller.subscribe(self.run)

    async def run(self, snapshot: FilterSnapshot) -> Optional[SearchResult]:
        token = self.tokens.issue()
        index = self.index_handle.current

        # Suspension point: a newer propagation may be issued while this one waits
        await asyncio.sleep(0)

        try:
            result = self.engine.search(snapshot.filters, index, combination_mode=snapshot.combination_mode)
        except PhotoDiscoveryError as e:
            if not self.tokens.is_current(token):
                self.discarded += 1
                return None
            logger.warning(f"Live search for request {token} failed: {e.code}: {e.message}")
            self.latest_error = e
            if self.on_error is not None:
                await call_maybe_async(self.on_error, e)
            return None

        if not self.tokens.is_current(token):
            self.discarded += 1
            logger.debug(f"Discarding stale search result for request {token} (latest {self.tokens.latest})")
            return None

        self.latest_result = result
        self.latest_error = None
        if self.on_results is not None:
            await call_maybe_async(self.on_results, result)
        return result

    def close(self):
        self._unsubscribe()
