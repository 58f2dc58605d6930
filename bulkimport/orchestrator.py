from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
import logging
import threading
import time

from bulkimport.batching import combine_outcomes, failed_outcome, split_batches
from bulkimport.dispatch import BulkCreateClient, dispatch_batch
from bulkimport.errors import BatchDispatchError, ImportAborted
from bulkimport.progress import ProgressObserver, ProgressTally, notify
from bulkimport.retry import DispatchOutcome
from bulkimport.schemas import BatchOutcome, BulkOperationResult, ImportRecord


logger = logging.getLogger(__name__)

ON_BATCH_FAILURE_POLICIES = ("continue", "abort")


@dataclass(frozen=True)
class ImportOptions:
    on_progress: ProgressObserver | None = None
    batch_size: int = 50
    retry_attempts: int = 3
    retry_delay_seconds: float = 1.0
    inter_batch_delay_seconds: float = 0.5
    on_batch_failure: str = "continue"
    # Called with (batch_index, attempt, outcome) after every dispatch attempt.
    on_attempt: Callable[[int, int, DispatchOutcome], None] | None = None
    sleep: Callable[[float], None] = time.sleep
    cancel_event: threading.Event | None = None


def process_bulk_import(
    client: BulkCreateClient,
    records: Sequence[ImportRecord],
    options: ImportOptions | None = None,
) -> BulkOperationResult:
    """Send validated records to the bulk-create endpoint batch by batch.

    Batches go out strictly one after another. An input that fits in one batch
    is sent once and its outcome returned as is; a failure there propagates as
    ``BatchDispatchError``. Larger inputs are split, and a batch that still
    fails after its retries is counted as entirely failed; with the ``abort``
    policy the run then stops with ``ImportAborted``. Setting ``cancel_event``
    ends retries of the in-flight batch and stops the run before the next
    pause, returning what was processed so far.
    """
    options = options or ImportOptions()
    if options.on_batch_failure not in ON_BATCH_FAILURE_POLICIES:
        raise ValueError(f"unknown on_batch_failure policy: {options.on_batch_failure!r}")

    total = len(records)
    if total == 0:
        return BulkOperationResult(success_count=0, failed_count=0, total_count=0)

    if total <= options.batch_size:
        outcome = _dispatch(client, records, 0, options)
        logger.info(
            "bulk import sent as single batch",
            extra={"total": total, "success": outcome.success_count, "failed": outcome.failed_count},
        )
        return replace(outcome, total_count=total)

    batches = split_batches(records, options.batch_size)
    outcomes: list[BatchOutcome] = []
    tally = ProgressTally(total=total)

    for batch_index, batch in enumerate(batches):
        if _cancelled(options):
            logger.warning(
                "bulk import cancelled",
                extra={"processed": tally.processed, "total": total, "batches_left": len(batches) - batch_index},
            )
            break

        try:
            outcome = _dispatch(client, batch, batch_index, options)
        except BatchDispatchError as exc:
            logger.error(
                "batch failed after retries",
                extra={"batch_index": batch_index, "batch_size": len(batch), "attempts": exc.attempts, "error": str(exc)},
            )
            outcomes.append(failed_outcome(batch, str(exc)))
            tally = tally.advance_failed(len(batch))
            notify(options.on_progress, tally.snapshot())
            if options.on_batch_failure == "abort":
                raise ImportAborted(
                    f"import aborted at batch {batch_index + 1} of {len(batches)}: {exc}",
                    partial_result=combine_outcomes(outcomes, total),
                ) from exc
        else:
            outcomes.append(outcome)
            tally = tally.advance(len(batch), outcome)
            notify(options.on_progress, tally.snapshot())

        if batch_index < len(batches) - 1 and not _cancelled(options):
            options.sleep(options.inter_batch_delay_seconds)

    result = combine_outcomes(outcomes, total)
    logger.info(
        "bulk import finished",
        extra={
            "total": total,
            "batches": len(outcomes),
            "success": result.success_count,
            "failed": result.failed_count,
        },
    )
    return result


def _dispatch(
    client: BulkCreateClient,
    batch: Sequence[ImportRecord],
    batch_index: int,
    options: ImportOptions,
) -> BatchOutcome:
    on_attempt = None
    if options.on_attempt is not None:
        hook = options.on_attempt

        def on_attempt(attempt: int, outcome: DispatchOutcome) -> None:
            hook(batch_index, attempt, outcome)

    return dispatch_batch(
        client,
        batch,
        retry_attempts=options.retry_attempts,
        retry_delay_seconds=options.retry_delay_seconds,
        sleep=options.sleep,
        on_attempt=on_attempt,
        should_stop=lambda: _cancelled(options),
    )


def _cancelled(options: ImportOptions) -> bool:
    return options.cancel_event is not None and options.cancel_event.is_set()
