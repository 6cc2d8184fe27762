"""
Photo Discovery Service
Wires the collection, index, parsers, search engine and bulk executor together
and exposes the agent-facing calls: search, bulk_select and execute_bulk_operation.
"""
import time
from typing import Any, Callable, Dict, Iterable, Optional, Union

from photo_discovery.config import Settings, settings as default_settings
from photo_discovery.errors import (
    BulkOperationFailedError,
    ConfirmationRequiredError,
    InvalidPhotoIdError,
    OperationNotSupportedError,
)
from photo_discovery.models.filters import CombinationMode, FilterState
from photo_discovery.models.operations import BulkOperation, OperationResult, OperationStatus, OperationType
from photo_discovery.models.photo import Photo
from photo_discovery.models.query import EntityType
from photo_discovery.models.responses import (
    BulkOperationResponse,
    BulkSelectResponse,
    ParsedQuery,
    SearchResponse,
)
from photo_discovery.models.search import SearchOptions, SearchResult
from photo_discovery.services.agent_state import AgentStateRegistry, get_registry
from photo_discovery.services.bulk_executor import BulkOperationExecutor, ConfirmationHandler, ProgressCallback
from photo_discovery.services.command_parser import CommandParser
from photo_discovery.services.filter_state import FilterStateController, LiveSearch
from photo_discovery.services.operation_catalogue import available_operations
from photo_discovery.services.photo_index import IndexHandle
from photo_discovery.services.photo_library import InMemoryPhotoLibrary
from photo_discovery.services.query_parser import QueryParser
from photo_discovery.services.search_engine import SearchEngine
from photo_discovery.services.selection import SelectionSet
from photo_discovery.services.store import KeyValueStore
import logging

logger = logging.getLogger(__name__)


AGENT_NAME = "photo_discovery"


class PhotoDiscoveryService:
    """
    Agent-facing facade over one photo collection

    Args:
        library: Storage collaborator; an empty in-memory library by default
        settings: Shared configuration
        registry: Agent registry to register with; None uses the global one
        register_agent: Set False to stay out of every registry
        permissions: Granted permissions for bulk operations
        confirmation_handler: Approves gated operations at execution time
        storage: Durable slot for the filter-state controller
        now: Clock for relative date expressions
        clock: Monotonic clock for the search budget
    """

    def __init__(
        self,
        library: Optional[InMemoryPhotoLibrary] = None,
        settings: Optional[Settings] = None,
        registry: Optional[AgentStateRegistry] = None,
        register_agent: bool = True,
        permissions: Optional[Iterable[str]] = None,
        confirmation_handler: Optional[ConfirmationHandler] = None,
        storage: Optional[KeyValueStore] = None,
        now=None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.settings = settings or default_settings
        self.library = library if library is not None else InMemoryPhotoLibrary()

        self.index = IndexHandle()
        self.index.build(self.library.photos)

        self.parser = QueryParser.from_index(self.index.current, settings=self.settings, now=now)
        self.engine = SearchEngine(self.settings, clock=clock) if clock else SearchEngine(self.settings)
        self.command_parser = CommandParser(self.settings)
        self.executor = BulkOperationExecutor(
            self.library,
            settings=self.settings,
            permissions=permissions,
            confirmation_handler=confirmation_handler,
        )
        self.selection = SelectionSet(max_size=self.settings.max_selection_size)

        self.filter_state = FilterStateController(self.settings, storage=storage)
        self.live_search = LiveSearch(self.filter_state, self.engine, self.index)

        self.last_query: Optional[str] = None
        self.last_result: Optional[SearchResult] = None

        self._unsubscribe_library = self.library.subscribe(self._on_library_change)

        self.registry: Optional[AgentStateRegistry] = None
        if register_agent:
            self.registry = registry if registry is not None else get_registry()
            self.registry.register(
                AGENT_NAME,
                self.state,
                {
                    "search": self.search,
                    "bulk_select": self.bulk_select,
                    "execute_bulk_operation": self.execute_bulk_operation,
                    "parse_command": self.parse_command,
                    "rollback": self.rollback,
                },
                description="Natural-language photo search and bulk operations",
                replace=True,
            )

        logger.info(f"Photo discovery service ready with {self.index.current.photo_count} photos")

    # ------------------------------------------------------------------
    # Collection changes
    # ------------------------------------------------------------------

    def _on_library_change(self, event: str, photo_id: str, photo: Optional[Photo]):
        if event == "removed":
            self.index.remove(photo_id)
            self.selection.remove([photo_id])
        elif photo is not None:
            self.index.update(photo)
            self._learn_vocabulary(photo)

    def _learn_vocabulary(self, photo: Photo):
        metadata = photo.metadata
        self.parser.register_vocabulary(EntityType.KEYWORD, metadata.keywords + metadata.objects + metadata.scenes)
        self.parser.register_vocabulary(EntityType.PERSON, metadata.people)
        if metadata.location:
            self.parser.register_vocabulary(EntityType.LOCATION, [metadata.location])
        if metadata.camera:
            self.parser.register_vocabulary(EntityType.CAMERA, [metadata.camera])

    def add_photos(self, photos: Iterable[Photo]):
        self.library.add_photos(photos)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(
        self,
        query: Optional[str] = None,
        filters: Optional[Union[FilterState, Dict[str, Any]]] = None,
        options: Optional[SearchOptions] = None,
        combination_mode: Optional[CombinationMode] = None,
    ) -> SearchResponse:
        """
        Parse ``query``, merge explicit ``filters`` over it and rank the collection

        With neither a query nor filters, the filter-state controller's current
        state is searched.

        Raises:
            InvalidQueryError, SearchTimeoutError, NoResultsError
        """
        started = time.perf_counter()
        parsed = self.parser.parse(query) if query else None

        if parsed is not None:
            criteria = parsed.filters
            mode = combination_mode or parsed.combination_mode
        elif filters is None:
            criteria = self.filter_state.filters
            mode = combination_mode or self.filter_state.combination_mode
        else:
            criteria = FilterState()
            mode = combination_mode or CombinationMode.AND

        if filters is not None:
            criteria = criteria.merge(filters)

        result = self.engine.search(criteria, self.index.current, combination_mode=mode, options=options)
        if parsed is not None:
            result.query = parsed.original_query

        self.last_query = query
        self.last_result = result

        return SearchResponse(
            results=result.photos,
            total_count=result.total_count,
            query_parsed=ParsedQuery(
                intent=parsed.intent,
                entities=parsed.entities,
                confidence=parsed.confidence,
            ) if parsed is not None else None,
            execution_time=round((time.perf_counter() - started) * 1000, 3),
        )

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def bulk_select(self, photo_ids: Optional[Iterable[str]] = None, select_all: bool = False) -> BulkSelectResponse:
        """
        Replace the selection

        Args:
            photo_ids: Explicit ids; every id must exist in the collection
            select_all: Select the whole collection instead

        Raises:
            InvalidPhotoIdError: some ids are not in the collection
            SelectionLimitExceededError: too many ids
        """
        index = self.index.current
        if select_all:
            ids = [photo.id for photo in index.photos] if index else []
        else:
            ids = list(dict.fromkeys(photo_ids or []))
            unknown = [photo_id for photo_id in ids if index is None or photo_id not in index]
            if unknown:
                raise InvalidPhotoIdError(unknown)

        self.selection.replace(ids)
        logger.info(f"Selected {len(self.selection)} photos")
        return BulkSelectResponse(
            selected_count=len(self.selection),
            selected_photos=self.selection.ids,
            available_operations=[op.value for op in available_operations(self.executor.permissions)],
        )

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    def parse_command(self, text: str, context: Optional[Dict[str, Any]] = None) -> BulkOperation:
        if context is None and self.last_query:
            context = {"last_query": self.last_query}
        return self.command_parser.parse_command(text, context=context, target_photos=self.selection.ids)

    def resolve_operation(
        self,
        operation: Union[str, OperationType, BulkOperation],
        parameters: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> BulkOperation:
        """Turn an operation type, its string value, or a command sentence into a descriptor"""
        if isinstance(operation, BulkOperation):
            descriptor = operation
        else:
            operation_type = self._operation_type(operation)
            if operation_type is not None:
                descriptor = BulkOperation(type=operation_type, confidence=1.0, original_command=operation_type.value)
            else:
                descriptor = self.parse_command(str(operation), context)
                if descriptor.type == OperationType.UNKNOWN:
                    raise OperationNotSupportedError(
                        f"No bulk operation recognised in '{operation}'",
                        {"suggestions": descriptor.suggestions},
                    )

        if parameters:
            descriptor = descriptor.model_copy(update={"parameters": {**descriptor.parameters, **parameters}})
        return descriptor

    @staticmethod
    def _operation_type(operation: Union[str, OperationType]) -> Optional[OperationType]:
        if isinstance(operation, OperationType):
            return None if operation == OperationType.UNKNOWN else operation
        try:
            operation_type = OperationType(operation.strip().lower())
        except ValueError:
            return None
        return None if operation_type == OperationType.UNKNOWN else operation_type

    async def execute_bulk_operation(
        self,
        operation: Union[str, OperationType, BulkOperation],
        parameters: Optional[Dict[str, Any]] = None,
        confirmed: bool = False,
        photo_ids: Optional[Iterable[str]] = None,
        progress_callback: Optional[ProgressCallback] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> BulkOperationResponse:
        """
        Run a bulk operation over the selection (or ``photo_ids``)

        Args:
            operation: Operation type, or a natural-language command
            parameters: Explicit parameters, applied over parsed ones
            confirmed: Pre-approval for destructive or oversized operations
            photo_ids: Overrides the current selection
            progress_callback: Called once per batch with (processed, total)
            context: Command context; defaults to the last search query

        Returns:
            BulkOperationResponse; partial failures come back with success False

        Raises:
            ValidationError subclasses before execution starts,
            ConfirmationRequiredError when confirmation is needed and nobody can give it,
            BulkOperationFailedError when the run ends failed
        """
        descriptor = self.resolve_operation(operation, parameters, context)
        ids = list(photo_ids) if photo_ids is not None else (descriptor.target_photos or self.selection.ids)

        if (not confirmed and self.executor.confirmation_handler is None
                and self.executor.needs_confirmation(descriptor, len(ids))):
            raise ConfirmationRequiredError(
                f"'{descriptor.type.value}' on {len(ids)} photos must be confirmed",
                {"operation": descriptor.type.value, "photo_count": len(ids)},
            )

        result = await self.executor.execute(
            descriptor,
            ids,
            progress_callback=progress_callback,
            confirmed=confirmed,
        )

        if result.status == OperationStatus.FAILED:
            raise BulkOperationFailedError(
                f"{descriptor.type.value} failed for all {result.failed} photos",
                {
                    "operation_id": result.operation_id,
                    "errors": [error.model_dump() for error in result.errors],
                    "warnings": result.warnings,
                },
            )
        return self._operation_response(result)

    async def rollback(self, operation_id: str) -> BulkOperationResponse:
        result = await self.executor.rollback(operation_id)
        return self._operation_response(result)

    def get_operation(self, operation_id: str) -> Optional[OperationResult]:
        return self.executor.get_result(operation_id)

    @staticmethod
    def _operation_response(result: OperationResult) -> BulkOperationResponse:
        return BulkOperationResponse(
            success=result.status in (OperationStatus.COMPLETED, OperationStatus.ROLLED_BACK),
            processed_count=result.completed,
            errors=result.errors,
            operation_id=result.operation_id,
            status=result.status,
            warnings=result.warnings,
        )

    # ------------------------------------------------------------------
    # Agent state
    # ------------------------------------------------------------------

    def state(self) -> Dict[str, Any]:
        """Read-only view published to the agent registry"""
        index = self.index.current
        return {
            "photo_count": index.photo_count if index else 0,
            "index_version": self.index.version,
            "index": index.stats() if index else None,
            "selected_count": len(self.selection),
            "selected_photos": self.selection.ids,
            "last_query": self.last_query,
            "last_result_count": self.last_result.total_count if self.last_result else None,
            "filters": self.filter_state.snapshot.model_dump(mode="json"),
            "live_search_error": self.live_search.latest_error.to_dict() if self.live_search.latest_error else None,
            "available_operations": [op.value for op in available_operations(self.executor.permissions)],
            "operations": [
                {"operation_id": result.operation_id, "type": result.type.value, "status": result.status.value}
                for result in self.executor.operations
            ],
        }

    def close(self):
        self._unsubscribe_library()
        self.live_search.close()
        self.filter_state.close()
        if self.registry is not None:
            self.registry.unregister(AGENT_NAME)
            self.registry = None
