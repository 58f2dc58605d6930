import argparse
import logging
from pathlib import Path

from bulkimport.config import Settings, get_settings
from bulkimport.database import build_session_factory
from bulkimport.ingest import read_rows
from bulkimport.orchestrator import ON_BATCH_FAILURE_POLICIES
from bulkimport.pipeline import ImportRunner
from bulkimport.reporting import generate_error_report, write_text
from bulkimport.scheduler import start_scheduler
from bulkimport.schemas import ImportProgress
from bulkimport.validation import validate_rows


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bulk-import user accounts into the management console")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="validate a roster file and import its valid rows")
    run_parser.add_argument("--file", required=True, type=Path, help="CSV or JSONL roster file")
    run_parser.add_argument("--run-key", required=False, help="Idempotency key for this import (default: file name)")
    run_parser.add_argument(
        "--trigger-source",
        default="manual",
        choices=["manual", "scheduled"],
        help="Metadata label for how this import was triggered",
    )
    run_parser.add_argument("--preflight", action="store_true", help="ask the server to validate before importing")
    run_parser.add_argument("--dry-run", action="store_true", help="validate and report without importing")
    run_parser.add_argument(
        "--on-batch-failure",
        choices=ON_BATCH_FAILURE_POLICIES,
        default=None,
        help="what to do when a batch fails after all retries",
    )

    validate_parser = subparsers.add_parser("validate", help="check a roster file locally")
    validate_parser.add_argument("--file", required=True, type=Path, help="CSV or JSONL roster file")
    validate_parser.add_argument("--report", required=False, type=Path, help="where to write the CSV error report")

    schedule_parser = subparsers.add_parser("schedule", help="start the daily inbox import")
    schedule_parser.add_argument("--run-now", action="store_true", help="also import the inbox once immediately")

    return parser.parse_args()


def print_progress(progress: ImportProgress) -> None:
    print(
        "progress processed={processed}/{total} success={success} failed={failed} percent={percentage}".format(
            processed=progress.processed,
            total=progress.total,
            success=progress.success,
            failed=progress.failed,
            percentage=progress.percentage,
        ),
        flush=True,
    )


def validate_file(settings: Settings, input_path: Path, report_path: Path | None) -> int:
    try:
        rows = read_rows(input_path, max_bytes=settings.max_file_bytes)
    except (OSError, ValueError) as exc:
        print(f"error={exc}")
        return 1

    result = validate_rows(rows, max_rows=settings.max_rows)
    print(
        "valid={valid} total={total} valid_rows={valid_rows} invalid_rows={invalid_rows} errors={errors}".format(
            valid=result.valid,
            total=result.total_rows,
            valid_rows=result.valid_rows,
            invalid_rows=result.invalid_rows,
            errors=len(result.errors),
        )
    )
    for error in result.errors:
        print(f"row={error.row} field={error.field} message={error.message}")

    if report_path is not None and result.errors:
        write_text(report_path, generate_error_report(result.errors))
    return 0 if result.valid else 1


def main() -> None:
    args = parse_args()
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    if args.command == "validate":
        raise SystemExit(validate_file(settings, args.file, args.report))

    session_factory = build_session_factory(settings.database_url)
    if args.command == "schedule":
        start_scheduler(settings, session_factory, run_now=args.run_now)
        return

    run_key = args.run_key or (f"dry-run-{args.file.stem}" if args.dry_run else args.file.stem)

    runner = ImportRunner(settings, session_factory)
    result = runner.run(
        input_path=args.file,
        run_key=run_key,
        trigger_source=args.trigger_source,
        preflight=args.preflight,
        dry_run=args.dry_run,
        on_batch_failure=args.on_batch_failure,
        on_progress=print_progress,
    )

    print(
        "run_id={run_id} run_key={run_key} trigger={trigger} status={status} total={total} valid={valid} "
        "invalid={invalid} success={success} failed={failed} reused={reused} report={report}".format(
            run_id=result.run_id,
            run_key=result.run_key,
            trigger=result.trigger_source,
            status=result.status,
            total=result.total_rows,
            valid=result.valid_rows,
            invalid=result.invalid_rows,
            success=result.success_count,
            failed=result.failed_count,
            reused=result.reused_existing_run,
            report=result.report_path,
        )
    )
    if result.status == "failed":
        raise SystemExit(1)


if __name__ == "__main__":
    main()
