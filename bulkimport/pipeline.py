from collections.abc import Callable, Sequence
import logging
from pathlib import Path
import time

from sqlalchemy.orm import Session, sessionmaker

from bulkimport.batching import combine_outcomes, failed_outcome
from bulkimport.client import UserImportClient
from bulkimport.config import Settings
from bulkimport.db_models import ImportRun
from bulkimport.errors import BatchDispatchError, ImportAborted, RemoteValidationError
from bulkimport.ingest import read_rows
from bulkimport.orchestrator import ImportOptions, process_bulk_import
from bulkimport.progress import ProgressObserver
from bulkimport.reporting import generate_error_report, write_json, write_jsonl, write_text
from bulkimport.retry import DispatchOutcome, Success
from bulkimport.run_store import (
    create_or_get_run,
    created_identifiers,
    mark_run_failed,
    mark_run_finished,
    mark_run_running,
    record_batch_attempt,
    reset_failed_run_state,
    store_record_results,
    store_rejected_rows,
)
from bulkimport.schemas import BulkOperationResult, ImportRecord, ImportResult, RecordOutcome, ValidationResult
from bulkimport.validation import validate_rows


logger = logging.getLogger(__name__)

REUSABLE_STATUSES = ("succeeded", "partial", "validated")
ClientFactory = Callable[[Settings], UserImportClient]


def default_client_factory(settings: Settings) -> UserImportClient:
    return UserImportClient(
        settings.api_base_url,
        token=settings.api_token,
        timeout_seconds=settings.request_timeout_seconds,
        validate_timeout_seconds=settings.validate_timeout_seconds,
    )


class ImportRunner:
    def __init__(
        self,
        settings: Settings,
        session_factory: sessionmaker[Session],
        client_factory: ClientFactory | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.client_factory = client_factory or default_client_factory
        self.sleep = sleep or time.sleep

    def run(
        self,
        *,
        input_path: Path,
        run_key: str,
        trigger_source: str = "manual",
        preflight: bool = False,
        dry_run: bool = False,
        on_batch_failure: str | None = None,
        on_progress: ProgressObserver | None = None,
    ) -> ImportResult:
        with self.session_factory() as db:
            run, created = create_or_get_run(
                db,
                run_key=run_key,
                source_file=str(input_path),
                trigger_source=trigger_source,
            )
            if not created:
                if run.status in REUSABLE_STATUSES:
                    logger.info("idempotent import reused", extra={"run_key": run_key, "status": run.status})
                    return self._result_from_run(run, reused_existing_run=True)
                # Failed (or interrupted) runs start over under the same key.
                logger.info("retrying previous import", extra={"run_key": run_key, "status": run.status})
                reset_failed_run_state(db, run, source_file=str(input_path))
                self._clear_outputs(run_key)

            mark_run_running(db, run)

            validation: ValidationResult | None = None
            bulk: BulkOperationResult | None = None
            try:
                rows = read_rows(input_path, max_bytes=self.settings.max_file_bytes)
                validation = validate_rows(rows, max_rows=self.settings.max_rows)
                self._record_validation(db, run, validation)

                file_errors = [error.message for error in validation.errors if error.row == 0]
                if file_errors:
                    raise ValueError("file rejected: " + "; ".join(file_errors))

                if dry_run:
                    self._finish(db, run, validation, status="validated")
                    return self._result_from_run(run, reused_existing_run=False)

                if not validation.valid_records:
                    raise ValueError("no valid records to import")

                created = created_identifiers(db, run.id)
                pending = [record for record in validation.valid_records if record.username not in created]
                carried = _carried_outcome(validation.valid_records, created)
                if carried.success_count:
                    logger.info(
                        "skipping users created by an earlier attempt",
                        extra={"run_key": run_key, "skipped": carried.success_count, "pending": len(pending)},
                    )

                sent, abort_error = BulkOperationResult(success_count=0, failed_count=0, total_count=0), None
                if pending:
                    sent, abort_error = self._send(
                        db,
                        run,
                        pending,
                        preflight=preflight,
                        on_batch_failure=on_batch_failure or self.settings.on_batch_failure,
                        on_progress=on_progress,
                    )
                bulk = combine_outcomes([carried, sent], len(validation.valid_records))
                store_record_results(db, run_id=run.id, details=bulk.details)
                write_jsonl(self._results_path(run_key), [detail.to_dict() for detail in bulk.details])

                if abort_error is not None:
                    raise RuntimeError(abort_error)
                self._finish(db, run, validation, bulk=bulk, status=_final_status(validation, bulk))
            except Exception as exc:
                mark_run_failed(db, run, error=str(exc), **_counts(validation, bulk))
                logger.exception("import run failed", extra={"run_key": run_key})
                self._write_report(run)

            return self._result_from_run(run, reused_existing_run=False)

    def _send(
        self,
        db: Session,
        run: ImportRun,
        records: Sequence[ImportRecord],
        *,
        preflight: bool,
        on_batch_failure: str,
        on_progress: ProgressObserver | None,
    ) -> tuple[BulkOperationResult, str | None]:
        def persist_attempt(batch_index: int, attempt: int, outcome: DispatchOutcome) -> None:
            # Persist each attempt so retries stay auditable.
            failed = not isinstance(outcome, Success)
            record_batch_attempt(
                db,
                run_id=run.id,
                batch_index=batch_index,
                attempt=attempt,
                outcome=outcome.kind,
                status_code=outcome.status_code if failed else None,
                error=outcome.message if failed else None,
            )

        options = ImportOptions(
            on_progress=on_progress,
            batch_size=self.settings.batch_size,
            retry_attempts=self.settings.retry_attempts,
            retry_delay_seconds=self.settings.retry_delay_seconds,
            inter_batch_delay_seconds=self.settings.inter_batch_delay_seconds,
            on_batch_failure=on_batch_failure,
            on_attempt=persist_attempt,
            sleep=self.sleep,
        )

        with self.client_factory(self.settings) as client:
            if preflight:
                checked = client.validate_only(records)
                logger.info(
                    "server pre-flight finished",
                    extra={"run_key": run.run_key, "success": checked.success_count, "failed": checked.failed_count},
                )
                if checked.failed_count:
                    raise RemoteValidationError(
                        f"server rejected {checked.failed_count} of {len(records)} records in pre-flight"
                    )

            try:
                return process_bulk_import(client, records, options), None
            except ImportAborted as exc:
                return exc.partial_result, str(exc)
            except BatchDispatchError as exc:
                # Single-batch imports surface the failure directly.
                return failed_outcome(records, str(exc)), str(exc)

    def _record_validation(self, db: Session, run: ImportRun, validation: ValidationResult) -> None:
        store_rejected_rows(db, run_id=run.id, errors=validation.errors)
        if validation.errors:
            write_text(self._error_report_path(run.run_key), generate_error_report(validation.errors))
            logger.warning(
                "rows rejected during validation",
                extra={
                    "run_key": run.run_key,
                    "invalid_rows": validation.invalid_rows,
                    "errors": len(validation.errors),
                },
            )

    def _finish(
        self,
        db: Session,
        run: ImportRun,
        validation: ValidationResult,
        *,
        status: str,
        bulk: BulkOperationResult | None = None,
    ) -> None:
        if status == "failed":
            mark_run_failed(db, run, error="no records were created", **_counts(validation, bulk))
        else:
            mark_run_finished(db, run, status=status, **_counts(validation, bulk))
        self._write_report(run)

    def _write_report(self, run: ImportRun) -> None:
        write_json(
            self._report_path(run.run_key),
            {
                "run_key": run.run_key,
                "source_file": run.source_file,
                "trigger_source": run.trigger_source,
                "status": run.status,
                "error": run.error,
                "total_rows": run.total_rows,
                "valid_rows": run.valid_rows,
                "invalid_rows": run.invalid_rows,
                "success_count": run.success_count,
                "failed_count": run.failed_count,
                "error_report": self._existing(self._error_report_path(run.run_key)),
                "results_output": self._existing(self._results_path(run.run_key)),
            },
        )

    def _clear_outputs(self, run_key: str) -> None:
        for path in (self._error_report_path(run_key), self._results_path(run_key)):
            path.unlink(missing_ok=True)

    def _report_path(self, run_key: str) -> Path:
        return Path(self.settings.output_dir) / "reports" / f"{run_key}.json"

    def _error_report_path(self, run_key: str) -> Path:
        return Path(self.settings.output_dir) / "errors" / f"{run_key}.csv"

    def _results_path(self, run_key: str) -> Path:
        return Path(self.settings.output_dir) / "results" / f"{run_key}.jsonl"

    def _existing(self, path: Path) -> str | None:
        return str(path) if path.exists() else None

    def _result_from_run(self, run: ImportRun, reused_existing_run: bool) -> ImportResult:
        report_path = self._report_path(run.run_key)
        return ImportResult(
            run_id=run.id,
            run_key=run.run_key,
            source_file=run.source_file,
            trigger_source=run.trigger_source,
            status=run.status,
            total_rows=run.total_rows,
            valid_rows=run.valid_rows,
            invalid_rows=run.invalid_rows,
            success_count=run.success_count,
            failed_count=run.failed_count,
            report_path=self._existing(report_path),
            error_report_path=self._existing(self._error_report_path(run.run_key)),
            reused_existing_run=reused_existing_run,
        )


def _carried_outcome(records: Sequence[ImportRecord], created: dict[str, str | None]) -> BulkOperationResult:
    details = tuple(
        RecordOutcome(
            identifier=record.username,
            success=True,
            data=None if created[record.username] is None else {"id": created[record.username]},
        )
        for record in records
        if record.username in created
    )
    return BulkOperationResult(success_count=len(details), failed_count=0, total_count=len(details), details=details)


def _final_status(validation: ValidationResult, bulk: BulkOperationResult) -> str:
    if bulk.success_count == 0:
        return "failed"
    if bulk.failed_count == 0 and bulk.success_count == bulk.total_count and validation.invalid_rows == 0:
        return "succeeded"
    return "partial"


def _counts(validation: ValidationResult | None, bulk: BulkOperationResult | None) -> dict[str, int]:
    return {
        "total_rows": validation.total_rows if validation else 0,
        "valid_rows": validation.valid_rows if validation else 0,
        "invalid_rows": validation.invalid_rows if validation else 0,
        "success_count": bulk.success_count if bulk else 0,
        "failed_count": bulk.failed_count if bulk else 0,
    }
