"""
Bulk Operation Executor Tests
=============================

Covers validation, confirmation gating, batched execution with progress,
partial failure, cancellation and rollback.
"""
import itertools

import pytest

from photo_discovery.config import Settings
from photo_discovery.errors import (
    AmbiguousCommandError,
    BackendError,
    BackendUnavailableError,
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
from photo_discovery.models.operations import BulkOperation, OperationResult, OperationStatus, OperationType
from photo_discovery.services.bulk_executor import (
    OPERATION_TRANSITIONS,
    TERMINAL_STATES,
    BulkOperationExecutor,
    OperationRun,
)
from photo_discovery.services.concurrency import CancellationToken
from photo_discovery.services.operation_catalogue import OPERATION_CATALOGUE
from photo_discovery.services.photo_library import InMemoryPhotoLibrary


def operation(operation_type, photo_ids, confidence=0.9, **parameters):
    return BulkOperation(
        type=operation_type,
        parameters=parameters,
        confidence=confidence,
        target_photos=list(photo_ids),
    )


def tag(photo_ids, tags=("vacation",), **kwargs):
    return operation(OperationType.TAG, photo_ids, tags=list(tags), **kwargs)


class FlakyLibrary(InMemoryPhotoLibrary):
    """Fails each photo's first apply with a transient error"""

    def __init__(self, photos):
        super().__init__(photos)
        self.attempts = {}

    async def apply(self, operation_type, photo, parameters):
        self.attempts[photo.id] = self.attempts.get(photo.id, 0) + 1
        if self.attempts[photo.id] == 1:
            raise TransientBackendError(f"Timeout on {photo.id}")
        return await super().apply(operation_type, photo, parameters)


@pytest.fixture
def bulk_library(make_photos):
    return InMemoryPhotoLibrary(make_photos(500))


@pytest.fixture
def executor(bulk_library, settings):
    counter = itertools.count(1)
    return BulkOperationExecutor(bulk_library, settings, id_factory=lambda: f"op-{next(counter)}")


def ids(count):
    return [f"bulk-{i:04d}" for i in range(count)]


# ============================================================================
# STATE MACHINE
# ============================================================================

class TestStateMachine:
    """Operation lifecycle transitions"""

    def test_terminal_states(self):
        assert TERMINAL_STATES == {
            OperationStatus.FAILED,
            OperationStatus.CANCELLED,
            OperationStatus.ROLLED_BACK,
        }

    def test_rollback_only_from_finished_states(self):
        sources = {status for status, targets in OPERATION_TRANSITIONS.items() if OperationStatus.ROLLED_BACK in targets}
        assert sources == {OperationStatus.COMPLETED, OperationStatus.PARTIAL_FAILURE}

    def test_invalid_transition_raises(self):
        run = OperationRun(
            operation_id="op-x",
            definition=OPERATION_CATALOGUE[OperationType.TAG],
            parameters={},
            photo_ids=[],
            result=OperationResult(operation_id="op-x", type=OperationType.TAG, status=OperationStatus.COMPLETED),
        )

        with pytest.raises(InvalidStateTransitionError) as exc:
            run.transition(OperationStatus.EXECUTING)

        assert exc.value.current_status == "completed"
        assert exc.value.allowed == {"rolled_back"}


# ============================================================================
# VALIDATION
# ============================================================================

class TestValidation:
    """Errors raised before anything executes"""

    @pytest.mark.asyncio
    async def test_unknown_operation(self, executor):
        with pytest.raises(OperationNotSupportedError):
            await executor.execute(operation(OperationType.UNKNOWN, ids(1)))

    @pytest.mark.asyncio
    async def test_low_confidence_is_ambiguous(self, executor):
        with pytest.raises(AmbiguousCommandError):
            await executor.execute(tag(ids(1), confidence=0.5))

    @pytest.mark.asyncio
    async def test_missing_permission(self, bulk_library, settings):
        executor = BulkOperationExecutor(bulk_library, settings, permissions=["read"])

        with pytest.raises(InsufficientPermissionsError) as exc:
            await executor.execute(tag(ids(1)))

        assert exc.value.required == "write"

    @pytest.mark.asyncio
    async def test_empty_selection(self, executor):
        with pytest.raises(EmptySelectionError):
            await executor.execute(tag([]))

    @pytest.mark.asyncio
    async def test_selection_limit(self, bulk_library):
        executor = BulkOperationExecutor(bulk_library, Settings(log_dir=None, max_selection_size=3))

        with pytest.raises(SelectionLimitExceededError) as exc:
            await executor.execute(tag(ids(4)))

        assert exc.value.limit == 3

    @pytest.mark.asyncio
    async def test_all_ids_stale(self, executor):
        with pytest.raises(InvalidPhotoIdError) as exc:
            await executor.execute(tag(["missing-1", "missing-2"]))

        assert exc.value.photo_ids == ["missing-1", "missing-2"]

    @pytest.mark.asyncio
    async def test_unsupported_format(self, executor):
        with pytest.raises(ValidationError):
            await executor.execute(operation(OperationType.DOWNLOAD, ids(2), format="rar"))

    @pytest.mark.asyncio
    async def test_tag_without_tags(self, executor):
        with pytest.raises(ValidationError):
            await executor.execute(tag(ids(2), tags=()))

    @pytest.mark.asyncio
    async def test_validation_retains_nothing(self, executor):
        with pytest.raises(EmptySelectionError):
            await executor.execute(tag([]))

        assert executor.operations == []


# ============================================================================
# EXECUTION
# ============================================================================

class TestExecution:
    """Batched execution and progress"""

    @pytest.mark.asyncio
    async def test_tag_500_photos_in_ten_batches(self, executor, bulk_library):
        progress = []

        result = await executor.execute(
            tag(ids(500)),
            progress_callback=lambda processed, total: progress.append((processed, total)),
        )

        assert result.status == OperationStatus.COMPLETED
        assert result.completed == 500
        assert result.failed == 0
        assert len(progress) == 10
        assert progress[0] == (50, 500)
        assert progress[-1] == (500, 500)
        assert bulk_library.get_photo("bulk-0499").metadata.keywords == ["beach", "vacation"]

    @pytest.mark.asyncio
    async def test_progress_calls_round_up(self, executor):
        progress = []

        await executor.execute(tag(ids(120)), progress_callback=lambda processed, total: progress.append(processed))

        assert progress == [50, 100, 120]

    @pytest.mark.asyncio
    async def test_async_progress_callback(self, executor):
        seen = []

        async def report(processed, total):
            seen.append(processed)

        await executor.execute(tag(ids(60)), progress_callback=report, batch_size=20)

        assert seen == [20, 40, 60]

    @pytest.mark.asyncio
    async def test_progress_callback_errors_are_ignored(self, executor):
        def broken(processed, total):
            raise RuntimeError("ui went away")

        result = await executor.execute(tag(ids(3)), progress_callback=broken)

        assert result.status == OperationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_partial_failure(self, executor, bulk_library):
        bulk_library.failures["bulk-0002"] = BackendError("disk full")

        result = await executor.execute(tag(ids(5)))

        assert result.status == OperationStatus.PARTIAL_FAILURE
        assert result.completed == 4
        assert result.failed == 1
        assert [error.photo_id for error in result.errors] == ["bulk-0002"]
        assert result.errors[0].code == "BACKEND_ERROR"
        assert result.success is False

    @pytest.mark.asyncio
    async def test_every_photo_failing_is_failed(self, executor, bulk_library):
        for photo_id in ids(2):
            bulk_library.failures[photo_id] = BackendError("read only")

        result = await executor.execute(tag(ids(2)))

        assert result.status == OperationStatus.FAILED
        assert result.rollback_token is None

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_recorded(self, executor, bulk_library):
        bulk_library.failures["bulk-0001"] = RuntimeError("boom")

        result = await executor.execute(tag(ids(3)))

        assert result.completed == 2
        assert result.errors[0].code == "UNEXPECTED_ERROR"

    @pytest.mark.asyncio
    async def test_stale_ids_count_as_failed(self, executor):
        result = await executor.execute(tag(["bulk-0000", "gone", "bulk-0001"]))

        assert result.total == 3
        assert result.completed == 2
        assert result.failed == 1
        assert result.errors[0].photo_id == "gone"
        assert result.errors[0].code == "INVALID_PHOTO_ID"
        assert result.status == OperationStatus.PARTIAL_FAILURE

    @pytest.mark.asyncio
    async def test_duplicate_ids_processed_once(self, executor, bulk_library):
        result = await executor.execute(tag(["bulk-0000", "bulk-0000"]))

        assert result.total == 1
        assert bulk_library.get_photo("bulk-0000").metadata.keywords == ["beach", "vacation"]

    @pytest.mark.asyncio
    async def test_transient_errors_retried(self, make_photos):
        library = FlakyLibrary(make_photos(3))
        executor = BulkOperationExecutor(library, Settings(log_dir=None, retry_attempts=1))

        result = await executor.execute(tag(ids(3)))

        assert result.status == OperationStatus.COMPLETED
        assert library.attempts == {photo_id: 2 for photo_id in ids(3)}

    @pytest.mark.asyncio
    async def test_transient_errors_not_retried_by_default(self, make_photos, settings):
        executor = BulkOperationExecutor(FlakyLibrary(make_photos(2)), settings)

        result = await executor.execute(tag(ids(2)))

        assert result.status == OperationStatus.FAILED
        assert {error.code for error in result.errors} == {"BACKEND_TRANSIENT"}

    @pytest.mark.asyncio
    async def test_backend_outage_fails_and_reverts(self, executor, bulk_library):
        bulk_library.failures["bulk-0002"] = BackendUnavailableError("library offline")

        result = await executor.execute(tag(ids(5)))

        assert result.status == OperationStatus.FAILED
        assert result.completed == 2
        assert "Reverted completed photos after backend failure" in result.warnings
        assert bulk_library.get_photo("bulk-0000").metadata.keywords == ["beach"]
        assert bulk_library.get_photo("bulk-0004").metadata.keywords == ["beach"]


# ============================================================================
# CONFIRMATION
# ============================================================================

class TestConfirmation:
    """Destructive and oversized runs pass through confirmation"""

    @pytest.mark.asyncio
    async def test_delete_without_handler_is_cancelled(self, executor, bulk_library):
        result = await executor.execute(operation(OperationType.DELETE, ids(2)))

        assert result.status == OperationStatus.CANCELLED
        assert result.completed == 0
        assert result.warnings
        assert bulk_library.get_photo("bulk-0000") is not None

    @pytest.mark.asyncio
    async def test_delete_confirmed_by_handler(self, executor, bulk_library):
        requests = []

        def approve(request):
            requests.append(request)
            return True

        result = await executor.execute(operation(OperationType.DELETE, ids(2)), confirmation_handler=approve)

        assert result.status == OperationStatus.COMPLETED
        assert requests[0].destructive is True
        assert requests[0].photo_count == 2
        assert bulk_library.get_photo("bulk-0000") is None

    @pytest.mark.asyncio
    async def test_declined_confirmation(self, executor, bulk_library):
        result = await executor.execute(
            operation(OperationType.DELETE, ids(1)),
            confirmation_handler=lambda request: False,
        )

        assert result.status == OperationStatus.CANCELLED
        assert "Cancelled at confirmation" in result.warnings

    @pytest.mark.asyncio
    async def test_pre_confirmed_skips_handler(self, executor):
        result = await executor.execute(operation(OperationType.DELETE, ids(1)), confirmed=True)

        assert result.status == OperationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_oversized_selection_needs_confirmation(self, executor):
        async def approve(request):
            return request.photo_count == 101 and not request.destructive

        analyze = operation(OperationType.ANALYZE, ids(101))

        assert executor.needs_confirmation(analyze, 101)
        assert not executor.needs_confirmation(analyze, 100)

        result = await executor.execute(analyze, confirmation_handler=approve)

        assert result.status == OperationStatus.COMPLETED
        assert result.completed == 101


# ============================================================================
# CANCELLATION
# ============================================================================

class TestCancellation:
    """Cancellation is honoured between batches"""

    @pytest.mark.asyncio
    async def test_cancel_after_first_batch(self, executor):
        token = CancellationToken()

        result = await executor.execute(
            tag(ids(120)),
            cancel_token=token,
            progress_callback=lambda processed, total: token.cancel("user closed dialog"),
        )

        assert result.status == OperationStatus.CANCELLED
        assert result.completed == 50
        assert "user closed dialog" in result.warnings[-1]

    @pytest.mark.asyncio
    async def test_cancel_after_last_batch_completes(self, executor):
        token = CancellationToken()

        result = await executor.execute(
            tag(ids(10)),
            cancel_token=token,
            progress_callback=lambda processed, total: token.cancel(),
        )

        assert result.status == OperationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_cancelled_run_cannot_roll_back(self, executor):
        token = CancellationToken()
        token.cancel()
        result = await executor.execute(tag(ids(60)), cancel_token=token)

        with pytest.raises(InvalidStateTransitionError):
            await executor.rollback(result.operation_id)

    @pytest.mark.asyncio
    async def test_cancel_finished_run_is_refused(self, executor):
        result = await executor.execute(tag(ids(1)))

        assert executor.cancel(result.operation_id) is False
        assert executor.cancel("op-missing") is False


# ============================================================================
# ROLLBACK
# ============================================================================

class TestRollback:
    """Inverting completed operations"""

    @pytest.mark.asyncio
    async def test_tag_rollback_restores_keywords(self, executor, bulk_library):
        result = await executor.execute(tag(ids(5)))
        assert result.rollback_token is not None

        rolled_back = await executor.rollback(result.operation_id)

        assert rolled_back.status == OperationStatus.ROLLED_BACK
        assert rolled_back.rollback_token is None
        assert all(bulk_library.get_photo(photo_id).metadata.keywords == ["beach"] for photo_id in ids(5))

    @pytest.mark.asyncio
    async def test_partial_failure_rolls_back_successes(self, executor, bulk_library):
        bulk_library.failures["bulk-0001"] = BackendError("locked")
        result = await executor.execute(tag(ids(3), tags=("family",)))

        await executor.rollback(result.operation_id)

        assert bulk_library.get_photo("bulk-0000").metadata.keywords == ["beach"]
        assert bulk_library.get_photo("bulk-0002").metadata.keywords == ["beach"]

    @pytest.mark.asyncio
    async def test_album_rollback_removes_album(self, executor, bulk_library):
        result = await executor.execute(operation(OperationType.ALBUM_CREATE, ids(3), album_name="Hawaii"))
        assert bulk_library.albums == {"Hawaii": ids(3)}

        await executor.rollback(result.operation_id)

        assert bulk_library.albums == {}

    @pytest.mark.asyncio
    async def test_delete_cannot_roll_back(self, executor):
        result = await executor.execute(operation(OperationType.DELETE, ids(1)), confirmed=True)

        assert result.rollback_token is None
        with pytest.raises(RollbackNotSupportedError):
            await executor.rollback(result.operation_id)

    @pytest.mark.asyncio
    async def test_second_rollback_is_invalid(self, executor):
        result = await executor.execute(tag(ids(2)))
        await executor.rollback(result.operation_id)

        with pytest.raises(InvalidStateTransitionError):
            await executor.rollback(result.operation_id)

    @pytest.mark.asyncio
    async def test_unknown_operation_id(self, executor):
        with pytest.raises(RollbackNotSupportedError):
            await executor.rollback("op-missing")


# ============================================================================
# RETENTION
# ============================================================================

class TestRetention:
    """Results are kept until discarded"""

    @pytest.mark.asyncio
    async def test_results_retained_until_discard(self, executor):
        result = await executor.execute(tag(ids(1)))

        assert result.operation_id == "op-1"
        assert executor.get_result("op-1") is result
        assert executor.discard("op-1") is True
        assert executor.get_result("op-1") is None
        assert executor.discard("op-1") is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
