from dataclasses import dataclass
import os

from dotenv import load_dotenv


load_dotenv()


@dataclass(frozen=True)
class Settings:
    app_name: str
    api_base_url: str
    api_token: str | None
    database_url: str
    log_level: str
    input_dir: str
    output_dir: str
    batch_size: int
    retry_attempts: int
    retry_delay_seconds: float
    inter_batch_delay_seconds: float
    request_timeout_seconds: float
    validate_timeout_seconds: float
    on_batch_failure: str
    max_rows: int
    max_file_bytes: int
    schedule_hour_utc: int
    schedule_minute_utc: int


def get_settings() -> Settings:
    return Settings(
        app_name=os.getenv("APP_NAME", "bulkimport"),
        api_base_url=os.getenv("API_BASE_URL", "http://localhost:3000/api"),
        api_token=os.getenv("API_TOKEN") or None,
        database_url=os.getenv("DATABASE_URL", "sqlite:///./imports.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        input_dir=os.getenv("INPUT_DIR", "./data/inbox"),
        output_dir=os.getenv("OUTPUT_DIR", "./outputs"),
        batch_size=int(os.getenv("BATCH_SIZE", "50")),
        retry_attempts=int(os.getenv("RETRY_ATTEMPTS", "3")),
        retry_delay_seconds=float(os.getenv("RETRY_DELAY_SECONDS", "1")),
        inter_batch_delay_seconds=float(os.getenv("INTER_BATCH_DELAY_SECONDS", "0.5")),
        request_timeout_seconds=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30")),
        validate_timeout_seconds=float(os.getenv("VALIDATE_TIMEOUT_SECONDS", "15")),
        on_batch_failure=os.getenv("ON_BATCH_FAILURE", "continue"),
        max_rows=int(os.getenv("MAX_ROWS", "1000")),
        max_file_bytes=int(os.getenv("MAX_FILE_BYTES", str(5 * 1024 * 1024))),
        schedule_hour_utc=int(os.getenv("SCHEDULE_HOUR_UTC", "2")),
        schedule_minute_utc=int(os.getenv("SCHEDULE_MINUTE_UTC", "0")),
    )
