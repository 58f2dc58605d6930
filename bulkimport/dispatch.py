from collections.abc import Callable, Sequence
import logging
import time
from typing import Protocol

from bulkimport.errors import BatchDispatchError
from bulkimport.retry import DispatchOutcome, Success, run_with_retries
from bulkimport.schemas import BatchOutcome, ImportRecord


logger = logging.getLogger(__name__)


class BulkCreateClient(Protocol):
    def bulk_create(self, records: Sequence[ImportRecord]) -> DispatchOutcome: ...


def dispatch_batch(
    client: BulkCreateClient,
    batch: Sequence[ImportRecord],
    *,
    retry_attempts: int,
    retry_delay_seconds: float,
    sleep: Callable[[float], None] = time.sleep,
    on_attempt: Callable[[int, DispatchOutcome], None] | None = None,
    should_stop: Callable[[], bool] | None = None,
) -> BatchOutcome:
    attempts_made = 0

    def record_attempt(attempt: int, outcome: DispatchOutcome) -> None:
        nonlocal attempts_made
        attempts_made = attempt
        if not isinstance(outcome, Success):
            logger.warning(
                "batch dispatch attempt failed",
                extra={
                    "attempt": attempt,
                    "batch_size": len(batch),
                    "retryable": outcome.retryable,
                    "error": outcome.message,
                },
            )
        if on_attempt:
            on_attempt(attempt, outcome)

    outcome = run_with_retries(
        lambda: client.bulk_create(batch),
        attempts=retry_attempts,
        delay_seconds=retry_delay_seconds,
        sleep=sleep,
        on_attempt=record_attempt,
        should_stop=should_stop,
    )
    if isinstance(outcome, Success):
        return outcome.outcome

    raise BatchDispatchError(outcome.message, outcome=outcome, attempts=attempts_made)
