import logging
from pathlib import Path

from apscheduler.schedulers.blocking import BlockingScheduler
from sqlalchemy.orm import Session, sessionmaker

from bulkimport.config import Settings
from bulkimport.ingest import SUPPORTED_SUFFIXES
from bulkimport.pipeline import ImportRunner


logger = logging.getLogger(__name__)


def inbox_files(input_dir: str) -> list[Path]:
    inbox = Path(input_dir)
    if not inbox.is_dir():
        return []
    return sorted(path for path in inbox.iterdir() if path.is_file() and path.suffix.lower() in SUPPORTED_SUFFIXES)


def run_inbox_imports(settings: Settings, session_factory: sessionmaker[Session]) -> None:
    runner = ImportRunner(settings, session_factory)
    for path in inbox_files(settings.input_dir):
        # One run key per file keeps already-imported files from being sent twice.
        run_key = f"scheduled-{path.stem}"
        result = runner.run(input_path=path, run_key=run_key, trigger_source="scheduled")
        if result.status == "failed":
            logger.error(
                "scheduled import failed",
                extra={"run_key": result.run_key, "source_file": str(path), "status": result.status},
            )
            continue
        logger.info(
            "scheduled import completed",
            extra={
                "run_key": result.run_key,
                "status": result.status,
                "reused_existing_run": result.reused_existing_run,
            },
        )


def start_scheduler(settings: Settings, session_factory: sessionmaker[Session], *, run_now: bool = False) -> None:
    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(
        run_inbox_imports,
        "cron",
        args=[settings, session_factory],
        hour=settings.schedule_hour_utc,
        minute=settings.schedule_minute_utc,
        id="daily_inbox_import",
        replace_existing=True,
    )

    logger.info(
        "scheduler started",
        extra={
            "input_dir": settings.input_dir,
            "schedule_hour_utc": settings.schedule_hour_utc,
            "schedule_minute_utc": settings.schedule_minute_utc,
        },
    )

    if run_now:
        run_inbox_imports(settings, session_factory)

    scheduler.start()
