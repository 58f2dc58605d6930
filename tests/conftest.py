from collections.abc import Generator
import json
from pathlib import Path

import httpx
import pytest

from bulkimport.client import UserImportClient
from bulkimport.config import Settings
from bulkimport.database import build_session_factory
from bulkimport.pipeline import ImportRunner
from bulkimport.schemas import ImportRecord


CSV_HEADER = "username,email,password,firstName,lastName,userType,isActive"


class FakeUserApi:
    """Stands in for the console backend behind an ``httpx.MockTransport``.

    ``script`` holds canned responses consumed one per bulk-import call;
    once it runs dry every user in the request is reported as created.
    """

    def __init__(self) -> None:
        self.script: list[httpx.Response | Exception] = []
        self.requests: list[list[dict[str, object]]] = []
        self.validate_requests: list[list[dict[str, object]]] = []
        self.reject_usernames: set[str] = set()

    def handler(self, request: httpx.Request) -> httpx.Response:
        users = json.loads(request.content)["users"]
        if request.url.path.endswith("/validate"):
            self.validate_requests.append(users)
            return envelope(self._result(users))

        self.requests.append(users)
        if self.script:
            scripted = self.script.pop(0)
            if isinstance(scripted, Exception):
                raise scripted
            return scripted
        return envelope(self._result(users))

    def _result(self, users: list[dict[str, object]]) -> dict[str, object]:
        details = []
        for index, user in enumerate(users):
            if user["username"] in self.reject_usernames:
                details.append({"identifier": user["username"], "success": False, "error": "Username already exists"})
            else:
                details.append(
                    {"identifier": user["username"], "success": True, "data": {"id": f"u-{len(self.requests)}-{index}"}}
                )
        success = sum(1 for detail in details if detail["success"])
        return {
            "successCount": success,
            "failedCount": len(details) - success,
            "totalCount": len(details),
            "details": details,
        }

    def client(self, *_args: object) -> UserImportClient:
        return UserImportClient("http://console.test/api", transport=httpx.MockTransport(self.handler))


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def envelope(data: dict[str, object] | None, *, success: bool = True, status: int = 200, message: str | None = None):
    body: dict[str, object] = {"success": success}
    if data is not None:
        body["data"] = data
    if message is not None:
        body["message"] = message
    return httpx.Response(status, json=body)


def make_records(count: int, prefix: str = "user") -> list[ImportRecord]:
    return [
        ImportRecord(
            username=f"{prefix}_{index}",
            email=f"{prefix}{index}@example.com",
            password="SecurePass123!",
            user_type=3,
        )
        for index in range(count)
    ]


def write_roster(path: Path, lines: list[str]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join([CSV_HEADER, *lines]) + "\n", encoding="utf-8")
    return path


def roster_line(index: int) -> str:
    return f"student_{index},student{index}@example.com,SecurePass123!,Stu,Dent,3,true"


@pytest.fixture()
def fake_api() -> FakeUserApi:
    return FakeUserApi()


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def temp_workspace(tmp_path: Path) -> Path:
    (tmp_path / "data" / "inbox").mkdir(parents=True, exist_ok=True)
    (tmp_path / "outputs").mkdir(parents=True, exist_ok=True)
    return tmp_path


@pytest.fixture()
def test_settings(temp_workspace: Path) -> Settings:
    return Settings(
        app_name="bulkimport",
        api_base_url="http://console.test/api",
        api_token=None,
        database_url=f"sqlite:///{temp_workspace / 'test.db'}",
        log_level="INFO",
        input_dir=str(temp_workspace / "data" / "inbox"),
        output_dir=str(temp_workspace / "outputs"),
        batch_size=50,
        retry_attempts=2,
        retry_delay_seconds=0,
        inter_batch_delay_seconds=0,
        request_timeout_seconds=5,
        validate_timeout_seconds=5,
        on_batch_failure="continue",
        max_rows=1000,
        max_file_bytes=5 * 1024 * 1024,
        schedule_hour_utc=2,
        schedule_minute_utc=0,
    )


@pytest.fixture()
def runner(test_settings: Settings, fake_api: FakeUserApi, recording_sleep: RecordingSleep) -> Generator[ImportRunner, None, None]:
    session_factory = build_session_factory(test_settings.database_url)
    yield ImportRunner(test_settings, session_factory, client_factory=fake_api.client, sleep=recording_sleep)
