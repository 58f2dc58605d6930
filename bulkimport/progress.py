from collections.abc import Callable
from dataclasses import dataclass, replace
import logging

from bulkimport.schemas import BatchOutcome, ImportProgress


logger = logging.getLogger(__name__)

ProgressObserver = Callable[[ImportProgress], None]


@dataclass(frozen=True)
class ProgressTally:
    total: int
    processed: int = 0
    success: int = 0
    failed: int = 0

    def advance(self, batch_size: int, outcome: BatchOutcome) -> "ProgressTally":
        return replace(
            self,
            processed=self.processed + batch_size,
            success=self.success + outcome.success_count,
            failed=self.failed + outcome.failed_count,
        )

    def advance_failed(self, batch_size: int) -> "ProgressTally":
        # An undeliverable batch still counts as processed, every record failed.
        return replace(self, processed=self.processed + batch_size, failed=self.failed + batch_size)

    def snapshot(self) -> ImportProgress:
        return ImportProgress(
            total=self.total,
            processed=self.processed,
            success=self.success,
            failed=self.failed,
            percentage=percentage(self.processed, self.total),
        )


def percentage(processed: int, total: int) -> int:
    if total <= 0:
        return 100
    # Half-up rounding; round() would send 62.5 to 62.
    return min(100, (processed * 200 + total) // (total * 2))


def notify(observer: ProgressObserver | None, progress: ImportProgress) -> None:
    if observer is None:
        return
    try:
        observer(progress)
    except Exception:
        logger.exception("progress observer raised", extra={"processed": progress.processed, "total": progress.total})
