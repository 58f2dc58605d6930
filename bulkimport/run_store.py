from collections.abc import Sequence
from datetime import UTC, datetime

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bulkimport.db_models import BatchAttempt, ImportRun, RecordResult, RejectedRow
from bulkimport.schemas import RecordOutcome, ValidationError


def utc_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def get_run_by_key(db: Session, run_key: str) -> ImportRun | None:
    stmt = select(ImportRun).where(ImportRun.run_key == run_key)
    return db.execute(stmt).scalar_one_or_none()


def create_or_get_run(db: Session, *, run_key: str, source_file: str, trigger_source: str) -> tuple[ImportRun, bool]:
    run = ImportRun(run_key=run_key, source_file=source_file, trigger_source=trigger_source, status="queued")
    db.add(run)
    try:
        db.commit()
    except IntegrityError:
        # Unique run_key makes a repeated import of the same key a lookup.
        db.rollback()
        existing = get_run_by_key(db, run_key)
        if existing:
            return existing, False
        raise

    db.refresh(run)
    return run, True


def reset_failed_run_state(db: Session, run: ImportRun, *, source_file: str) -> None:
    db.execute(delete(BatchAttempt).where(BatchAttempt.run_id == run.id))
    db.execute(delete(RejectedRow).where(RejectedRow.run_id == run.id))
    # Users created before the failure exist remotely; their results stay.
    db.execute(delete(RecordResult).where(RecordResult.run_id == run.id, RecordResult.success.is_(False)))

    run.status = "queued"
    run.source_file = source_file
    run.error = None
    run.completed_at = None
    _set_counts(run)
    db.commit()


def created_identifiers(db: Session, run_id: int) -> dict[str, str | None]:
    stmt = select(RecordResult.identifier, RecordResult.remote_id).where(
        RecordResult.run_id == run_id,
        RecordResult.success.is_(True),
    )
    return {identifier: remote_id for identifier, remote_id in db.execute(stmt).all()}


def mark_run_running(db: Session, run: ImportRun) -> None:
    run.status = "running"
    run.started_at = utc_now()
    run.error = None
    db.commit()


def mark_run_finished(
    db: Session,
    run: ImportRun,
    *,
    status: str,
    total_rows: int,
    valid_rows: int,
    invalid_rows: int,
    success_count: int,
    failed_count: int,
) -> None:
    run.status = status
    _set_counts(
        run,
        total_rows=total_rows,
        valid_rows=valid_rows,
        invalid_rows=invalid_rows,
        success_count=success_count,
        failed_count=failed_count,
    )
    run.completed_at = utc_now()
    run.error = None
    db.commit()


def mark_run_failed(
    db: Session,
    run: ImportRun,
    *,
    error: str,
    total_rows: int = 0,
    valid_rows: int = 0,
    invalid_rows: int = 0,
    success_count: int = 0,
    failed_count: int = 0,
) -> None:
    # The session may hold a half-finished transaction from the failing step.
    db.rollback()
    run.status = "failed"
    run.error = error
    _set_counts(
        run,
        total_rows=total_rows,
        valid_rows=valid_rows,
        invalid_rows=invalid_rows,
        success_count=success_count,
        failed_count=failed_count,
    )
    run.completed_at = utc_now()
    db.commit()


def record_batch_attempt(
    db: Session,
    *,
    run_id: int,
    batch_index: int,
    attempt: int,
    outcome: str,
    status_code: int | None = None,
    error: str | None = None,
) -> BatchAttempt:
    row = BatchAttempt(
        run_id=run_id,
        batch_index=batch_index,
        attempt=attempt,
        outcome=outcome,
        status_code=status_code,
        error=error,
        recorded_at=utc_now(),
    )
    db.add(row)
    db.commit()
    return row


def store_rejected_rows(db: Session, *, run_id: int, errors: Sequence[ValidationError]) -> None:
    for error in errors:
        db.add(
            RejectedRow(
                run_id=run_id,
                row_number=error.row,
                field=error.field,
                value=None if error.value is None else str(error.value),
                message=error.message,
            )
        )
    db.commit()


def store_record_results(db: Session, *, run_id: int, details: Sequence[RecordOutcome]) -> None:
    existing_stmt = select(RecordResult.identifier).where(RecordResult.run_id == run_id)
    seen = set(db.execute(existing_stmt).scalars().all())

    for detail in details:
        # The endpoint may report an identifier twice; keep the first report.
        if detail.identifier in seen:
            continue
        seen.add(detail.identifier)
        remote_id = None
        if detail.data:
            remote_id = detail.data.get("id") or detail.data.get("userId")
        db.add(
            RecordResult(
                run_id=run_id,
                identifier=detail.identifier,
                success=detail.success,
                remote_id=None if remote_id is None else str(remote_id),
                error=detail.error,
            )
        )
    db.commit()


def _set_counts(
    run: ImportRun,
    *,
    total_rows: int = 0,
    valid_rows: int = 0,
    invalid_rows: int = 0,
    success_count: int = 0,
    failed_count: int = 0,
) -> None:
    run.total_rows = total_rows
    run.valid_rows = valid_rows
    run.invalid_rows = invalid_rows
    run.success_count = success_count
    run.failed_count = failed_count
