"""
Bulk Operation Executor

Validates a BulkOperation against the current collection, gates destructive
or oversized runs behind confirmation, executes in fixed-size batches with
per-batch progress, and supports partial-failure reporting and rollback.

States: pending -> (confirming) -> executing -> completed | partial_failure | failed
        -> (rolled_back); cancelled is reachable before and during execution.
"""
import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from photo_discovery.config import Settings, settings as default_settings
from photo_discovery.errors import (
    AmbiguousCommandError,
    BackendError,
    BackendUnavailableError,
    BulkOperationFailedError,
    EmptySelectionError,
    InsufficientPermissionsError,
    InvalidPhotoIdError,
    InvalidStateTransitionError,
    OperationNotSupportedError,
    RollbackNotSupportedError,
    SelectionLimitExceededError,
    TransientBackendError,
    ValidationError,
)
from photo_discovery.models.operations import (
    BulkOperation,
    OperationResult,
    OperationStatus,
    OperationType,
    PhotoError,
)
from photo_discovery.services.concurrency import CancellationToken, call_maybe_async
from photo_discovery.services.operation_catalogue import OPERATION_CATALOGUE, OperationDefinition
from photo_discovery.services.photo_library import OperationBackend
import logging

logger = logging.getLogger(__name__)


# ============================================================================
# OPERATION STATE MACHINE
# ============================================================================

OPERATION_TRANSITIONS: Dict[OperationStatus, Set[OperationStatus]] = {
    OperationStatus.PENDING: {OperationStatus.CONFIRMING, OperationStatus.EXECUTING, OperationStatus.CANCELLED},
    OperationStatus.CONFIRMING: {OperationStatus.EXECUTING, OperationStatus.CANCELLED},
    OperationStatus.EXECUTING: {
        OperationStatus.COMPLETED,
        OperationStatus.PARTIAL_FAILURE,
        OperationStatus.FAILED,
        OperationStatus.CANCELLED,
    },
    OperationStatus.COMPLETED: {OperationStatus.ROLLED_BACK},
    OperationStatus.PARTIAL_FAILURE: {OperationStatus.ROLLED_BACK},
    OperationStatus.FAILED: set(),  # Terminal
    OperationStatus.CANCELLED: set(),  # Terminal
    OperationStatus.ROLLED_BACK: set(),  # Terminal
}

TERMINAL_STATES = {status for status, targets in OPERATION_TRANSITIONS.items() if not targets}


@dataclass
class ConfirmationRequest:
    """Sent to the confirmation handler before a gated run executes"""
    operation_id: str
    type: OperationType
    photo_count: int
    destructive: bool
    max_photos: int
    message: str


ConfirmationHandler = Callable[[ConfirmationRequest], Union[bool, Awaitable[bool]]]
ProgressCallback = Callable[[int, int], Any]


@dataclass
class OperationRun:
    """One execution of one operation"""
    operation_id: str
    definition: OperationDefinition
    parameters: Dict[str, Any]
    photo_ids: List[str]
    result: OperationResult
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    inversions: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)

    @property
    def status(self) -> OperationStatus:
        return self.result.status

    def transition(self, target: OperationStatus):
        allowed = OPERATION_TRANSITIONS[self.status]
        if target not in allowed:
            raise InvalidStateTransitionError(self.status.value, target.value, {s.value for s in allowed})
        logger.info(f"[{self.operation_id}] {self.definition.type.value}: {self.status.value} -> {target.value}")
        self.result.status = target

    def record_error(self, photo_id: str, error: str, code: Optional[str] = None):
        self.result.errors.append(PhotoError(photo_id=photo_id, error=error, code=code))
        self.result.failed += 1


class BulkOperationExecutor:
    """
    Runs bulk operations against an OperationBackend

    Args:
        backend: Storage collaborator applying per-photo side effects
        settings: Batch size, retry policy, limits and thresholds
        permissions: Granted permissions; defaults to settings.default_permissions
        confirmation_handler: Approves or declines gated runs (sync or async)
        catalogue: Operation definitions
    """

    def __init__(
        self,
        backend: OperationBackend,
        settings: Optional[Settings] = None,
        permissions: Optional[Iterable[str]] = None,
        confirmation_handler: Optional[ConfirmationHandler] = None,
        catalogue: Optional[Dict[OperationType, OperationDefinition]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self.backend = backend
        self.settings = settings or default_settings
        self.permissions: Set[str] = set(permissions if permissions is not None else self.settings.default_permissions)
        self.confirmation_handler = confirmation_handler
        self.catalogue = catalogue if catalogue is not None else OPERATION_CATALOGUE
        self.id_factory = id_factory or (lambda: f"op-{uuid.uuid4().hex[:12]}")
        self._runs: Dict[str, OperationRun] = {}

    # ------------------------------------------------------------------
    # Validation (nothing here leaves pending)
    # ------------------------------------------------------------------

    def validate(
        self,
        operation: BulkOperation,
        photo_ids: Optional[Iterable[str]] = None,
    ) -> Tuple[OperationDefinition, Dict[str, Any], List[str], List[str]]:
        """
        Validate an operation against the selection

        Args:
            operation: Parsed or hand-built descriptor
            photo_ids: Selection; defaults to operation.target_photos

        Returns:
            (definition, effective parameters, existing ids, stale ids)

        Raises:
            ValidationError subclasses describing the first problem found
        """
        definition = self.catalogue.get(operation.type)
        if definition is None:
            raise OperationNotSupportedError(
                f"Operation '{operation.type.value}' is not supported",
                {"suggestions": operation.suggestions},
            )

        if operation.confidence < self.settings.command_confidence_threshold:
            raise AmbiguousCommandError(
                f"Command confidence {operation.confidence:.2f} is below "
                f"{self.settings.command_confidence_threshold:.2f}; disambiguate first",
                {"suggestions": operation.suggestions},
            )

        if definition.required_permission not in self.permissions:
            raise InsufficientPermissionsError(definition.type.value, definition.required_permission)

        ids = list(dict.fromkeys(photo_ids if photo_ids is not None else operation.target_photos))
        if not ids:
            raise EmptySelectionError("No photos selected")
        if len(ids) > self.settings.max_selection_size:
            raise SelectionLimitExceededError(len(ids), self.settings.max_selection_size)

        existing = [photo_id for photo_id in ids if self.backend.get_photo(photo_id) is not None]
        stale = sorted(set(ids) - set(existing), key=ids.index)
        if not existing:
            raise InvalidPhotoIdError(stale)

        parameters = dict(definition.default_parameters)
        parameters.update(operation.parameters)
        self._validate_parameters(definition, parameters)

        return definition, parameters, existing, stale

    @staticmethod
    def _validate_parameters(definition: OperationDefinition, parameters: Dict[str, Any]):
        file_format = parameters.get("format")
        if definition.supported_formats and file_format not in definition.supported_formats:
            raise ValidationError(
                f"Format '{file_format}' is not supported for {definition.type.value}; "
                f"use one of {', '.join(definition.supported_formats)}",
                {"supported_formats": definition.supported_formats},
            )
        if definition.type == OperationType.TAG:
            if not parameters.get("tags"):
                raise ValidationError("Tag operation needs at least one tag")
            if parameters.get("action", "add") not in ("add", "remove"):
                raise ValidationError(f"Unknown tag action '{parameters.get('action')}'")
        if definition.type == OperationType.ALBUM_ADD and not parameters.get("album_name"):
            raise ValidationError("Adding to an album needs an album name")

    def needs_confirmation(self, operation: BulkOperation, photo_count: int) -> bool:
        definition = self.catalogue.get(operation.type)
        return bool(definition and definition.needs_confirmation(photo_count))

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        operation: BulkOperation,
        photo_ids: Optional[Iterable[str]] = None,
        progress_callback: Optional[ProgressCallback] = None,
        confirmation_handler: Optional[ConfirmationHandler] = None,
        confirmed: bool = False,
        cancel_token: Optional[CancellationToken] = None,
        batch_size: Optional[int] = None,
    ) -> OperationResult:
        """
        Validate, confirm if needed, and execute an operation in batches

        Args:
            operation: Operation descriptor
            photo_ids: Selection; defaults to operation.target_photos
            progress_callback: Called once per batch with (processed, total)
            confirmation_handler: Overrides the executor's handler for this run
            confirmed: Caller has already confirmed; skips the confirming state
            cancel_token: Checked between batches
            batch_size: Overrides settings.batch_size

        Returns:
            OperationResult (also retained until discard())

        Raises:
            ValidationError subclasses before anything executes
        """
        definition, parameters, existing, stale = self.validate(operation, photo_ids)

        operation_id = self.id_factory()
        run = OperationRun(
            operation_id=operation_id,
            definition=definition,
            parameters=parameters,
            photo_ids=existing,
            result=OperationResult(
                operation_id=operation_id,
                type=definition.type,
                total=len(existing) + len(stale),
            ),
            cancel_token=cancel_token or CancellationToken(),
        )
        self._runs[operation_id] = run

        for photo_id in stale:
            run.record_error(photo_id, "Photo no longer exists in the collection", InvalidPhotoIdError.code)
        if stale:
            logger.warning(f"[{operation_id}] Dropped {len(stale)} stale photo ids")

        # Confirmation gate
        if definition.needs_confirmation(len(existing)) and not confirmed:
            run.transition(OperationStatus.CONFIRMING)
            approved = await self._request_confirmation(run, confirmation_handler or self.confirmation_handler)
            if not approved:
                run.transition(OperationStatus.CANCELLED)
                run.result.finished_at = datetime.now(timezone.utc)
                return run.result

        await self._run_batches(run, progress_callback, batch_size or self.settings.batch_size)
        return run.result

    async def _request_confirmation(self, run: OperationRun, handler: Optional[ConfirmationHandler]) -> bool:
        definition = run.definition
        if definition.destructive:
            reason = f"{definition.label} is destructive and cannot be undone"
        else:
            reason = f"{len(run.photo_ids)} photos exceeds the {definition.max_photos}-photo limit for {definition.label.lower()}"

        if handler is None:
            run.result.warnings.append(f"Confirmation required ({reason}) but no confirmation handler is available")
            logger.warning(f"[{run.operation_id}] Cancelled: confirmation required and no handler")
            return False

        request = ConfirmationRequest(
            operation_id=run.operation_id,
            type=definition.type,
            photo_count=len(run.photo_ids),
            destructive=definition.destructive,
            max_photos=definition.max_photos,
            message=f"{definition.label} {len(run.photo_ids)} photos? {reason}.",
        )
        approved = bool(await call_maybe_async(handler, request))
        if not approved:
            run.result.warnings.append("Cancelled at confirmation")
        return approved

    async def _run_batches(self, run: OperationRun, progress_callback: Optional[ProgressCallback], batch_size: int):
        run.transition(OperationStatus.EXECUTING)
        run.result.started_at = datetime.now(timezone.utc)
        total = len(run.photo_ids)
        processed = 0

        for batch_start in range(0, total, batch_size):
            batch = run.photo_ids[batch_start:batch_start + batch_size]

            for photo_id in batch:
                photo = self.backend.get_photo(photo_id)
                if photo is None:
                    run.record_error(photo_id, "Photo was removed before it could be processed", InvalidPhotoIdError.code)
                    continue
                try:
                    inversion = await self._apply_with_retry(run, photo)
                except BackendUnavailableError as e:
                    run.record_error(photo_id, e.message, e.code)
                    await self._abort(run, e)
                    return
                except BackendError as e:
                    logger.warning(f"[{run.operation_id}] {photo_id} failed: {e.message}")
                    run.record_error(photo_id, e.message, e.code)
                    continue
                except Exception as e:
                    logger.exception(f"[{run.operation_id}] {photo_id} failed unexpectedly")
                    run.record_error(photo_id, str(e) or e.__class__.__name__, "UNEXPECTED_ERROR")
                    continue

                run.result.completed += 1
                if inversion is not None:
                    run.inversions.append((photo_id, inversion))

            processed += len(batch)
            if progress_callback is not None:
                try:
                    await call_maybe_async(progress_callback, processed, total)
                except Exception as e:
                    logger.warning(f"[{run.operation_id}] Progress callback raised: {e}")

            # Batch boundary: yield to the loop, then honour cancellation
            await asyncio.sleep(0)
            if run.cancel_token.cancelled and processed < total:
                run.result.warnings.append(
                    f"Cancelled after {processed} of {total} photos"
                    + (f": {run.cancel_token.reason}" if run.cancel_token.reason else "")
                )
                run.transition(OperationStatus.CANCELLED)
                run.result.finished_at = datetime.now(timezone.utc)
                return

        self._finalize(run)

    async def _apply_with_retry(self, run: OperationRun, photo) -> Optional[Dict[str, Any]]:
        attempts = 0
        while True:
            try:
                return await self.backend.apply(run.definition.type, photo, run.parameters)
            except TransientBackendError as e:
                if attempts >= self.settings.retry_attempts:
                    raise
                attempts += 1
                logger.info(f"[{run.operation_id}] Retrying {photo.id} after transient error "
                            f"({attempts}/{self.settings.retry_attempts}): {e.message}")
                if self.settings.retry_backoff_seconds:
                    await asyncio.sleep(self.settings.retry_backoff_seconds * attempts)

    async def _abort(self, run: OperationRun, error: BackendUnavailableError):
        """Backend unreachable: end failed and undo whatever was recorded"""
        logger.error(f"[{run.operation_id}] Backend unavailable, aborting: {error.message}")
        run.transition(OperationStatus.FAILED)

        if run.inversions:
            failed = await self._revert_inversions(run)
            if failed:
                run.result.warnings.append(f"Could not revert {len(failed)} photos after backend failure")
            else:
                run.result.warnings.append("Reverted completed photos after backend failure")
                run.inversions = []
        run.result.finished_at = datetime.now(timezone.utc)

    def _finalize(self, run: OperationRun):
        result = run.result
        if result.failed == 0:
            status = OperationStatus.COMPLETED
        elif result.completed == 0:
            status = OperationStatus.FAILED
        else:
            status = OperationStatus.PARTIAL_FAILURE
        run.transition(status)

        if run.definition.reversible and run.inversions:
            result.rollback_token = uuid.uuid4().hex
        result.finished_at = datetime.now(timezone.utc)
        logger.info(
            f"[{run.operation_id}] {run.definition.type.value} finished {status.value}: "
            f"{result.completed} completed, {result.failed} failed"
        )

    # ------------------------------------------------------------------
    # Rollback and retention
    # ------------------------------------------------------------------

    async def rollback(self, operation_id: str) -> OperationResult:
        """
        Invert a completed or partially failed operation

        Raises:
            RollbackNotSupportedError: unknown run, or a type without inversion data
            InvalidStateTransitionError: run is not completed / partial_failure
            BulkOperationFailedError: some photos could not be reverted
        """
        run = self._runs.get(operation_id)
        if run is None:
            raise RollbackNotSupportedError(f"No retained operation '{operation_id}'")

        if not run.definition.reversible:
            raise RollbackNotSupportedError(
                f"{run.definition.label} records no inversion data and cannot be rolled back",
                {"operation_id": operation_id, "type": run.definition.type.value},
            )

        allowed = OPERATION_TRANSITIONS[run.status]
        if OperationStatus.ROLLED_BACK not in allowed:
            raise InvalidStateTransitionError(
                run.status.value, OperationStatus.ROLLED_BACK.value, {s.value for s in allowed}
            )

        failed = await self._revert_inversions(run)
        if failed:
            raise BulkOperationFailedError(
                f"Rollback failed for {len(failed)} photos",
                {"operation_id": operation_id, "photo_ids": failed},
            )

        run.inversions = []
        run.result.rollback_token = None
        run.transition(OperationStatus.ROLLED_BACK)
        return run.result

    async def _revert_inversions(self, run: OperationRun) -> List[str]:
        """Revert in reverse order; keeps inversions that failed and returns their ids"""
        remaining: List[Tuple[str, Dict[str, Any]]] = []
        for photo_id, inversion in reversed(run.inversions):
            try:
                await self.backend.revert(run.definition.type, photo_id, inversion)
            except BackendError as e:
                logger.warning(f"[{run.operation_id}] Could not revert {photo_id}: {e.message}")
                remaining.append((photo_id, inversion))
        remaining.reverse()
        logger.info(f"[{run.operation_id}] Reverted {len(run.inversions) - len(remaining)} of {len(run.inversions)} photos")
        run.inversions = remaining
        return [photo_id for photo_id, _ in remaining]

    def cancel(self, operation_id: str, reason: Optional[str] = None) -> bool:
        """Request cancellation; honoured at the next batch boundary"""
        run = self._runs.get(operation_id)
        if run is None or run.status in TERMINAL_STATES:
            return False
        run.cancel_token.cancel(reason)
        return True

    def get_result(self, operation_id: str) -> Optional[OperationResult]:
        run = self._runs.get(operation_id)
        return run.result if run else None

    def discard(self, operation_id: str) -> bool:
        """Forget a finished run and its inversion data"""
        run = self._runs.get(operation_id)
        if run is None:
            return False
        if run.status in (OperationStatus.PENDING, OperationStatus.CONFIRMING, OperationStatus.EXECUTING):
            raise InvalidStateTransitionError(run.status.value, "discarded", set())
        del self._runs[operation_id]
        return True

    @property
    def operations(self) -> List[OperationResult]:
        return [run.result for run in self._runs.values()]
