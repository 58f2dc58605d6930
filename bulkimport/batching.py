from collections.abc import Sequence

from bulkimport.schemas import BatchOutcome, BulkOperationResult, ImportRecord, RecordOutcome


def split_batches(records: Sequence[ImportRecord], batch_size: int) -> list[list[ImportRecord]]:
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    if len(records) <= batch_size:
        return [list(records)]
    return [list(records[start : start + batch_size]) for start in range(0, len(records), batch_size)]


def combine_outcomes(outcomes: Sequence[BatchOutcome], total_count: int) -> BulkOperationResult:
    # total_count is the caller's record count, not re-derived from the outcomes.
    return BulkOperationResult(
        success_count=sum(outcome.success_count for outcome in outcomes),
        failed_count=sum(outcome.failed_count for outcome in outcomes),
        total_count=total_count,
        details=tuple(detail for outcome in outcomes for detail in outcome.details),
    )


def failed_outcome(batch: Sequence[ImportRecord], error: str) -> BatchOutcome:
    """Outcome standing in for a batch the endpoint never accepted."""
    return BatchOutcome(
        success_count=0,
        failed_count=len(batch),
        total_count=len(batch),
        details=tuple(RecordOutcome(identifier=record.username, success=False, error=error) for record in batch),
    )
