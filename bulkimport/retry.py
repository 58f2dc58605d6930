from collections.abc import Callable
from dataclasses import dataclass
import time

from bulkimport.schemas import BatchOutcome


@dataclass(frozen=True)
class Success:
    outcome: BatchOutcome
    kind = "success"
    retryable = False


@dataclass(frozen=True)
class ClientError:
    message: str
    status_code: int | None = None
    kind = "client_error"
    retryable = False


@dataclass(frozen=True)
class ServerError:
    """5xx responses and transport failures (refused connections, timeouts)."""

    message: str
    status_code: int | None = None
    kind = "server_error"
    retryable = True


@dataclass(frozen=True)
class MalformedResponse:
    message: str
    status_code: int | None = None
    kind = "malformed_response"
    retryable = False


DispatchOutcome = Success | ClientError | ServerError | MalformedResponse


def run_with_retries(
    fn: Callable[[], DispatchOutcome],
    *,
    attempts: int,
    delay_seconds: float,
    sleep: Callable[[float], None] = time.sleep,
    on_attempt: Callable[[int, DispatchOutcome], None] | None = None,
    should_stop: Callable[[], bool] | None = None,
) -> DispatchOutcome:
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    outcome: DispatchOutcome | None = None
    for attempt_index in range(attempts):
        outcome = fn()
        if on_attempt:
            on_attempt(attempt_index + 1, outcome)

        if not outcome.retryable or attempt_index == attempts - 1:
            break
        if should_stop is not None and should_stop():
            break
        sleep(delay_seconds * 2**attempt_index)

    return outcome
