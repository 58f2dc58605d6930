from collections.abc import Sequence
import logging

import httpx

from bulkimport.errors import RemoteValidationError
from bulkimport.retry import ClientError, DispatchOutcome, MalformedResponse, ServerError, Success
from bulkimport.schemas import BulkOperationResult, ImportRecord


logger = logging.getLogger(__name__)

BULK_IMPORT_PATH = "/admin/users/bulk-import"
VALIDATE_PATH = "/admin/users/bulk-import/validate"
CONNECT_TIMEOUT_SECONDS = 10.0


class UserImportClient:
    """Client for the remote user bulk-create and validate-only endpoints.

    Both endpoints answer with an envelope ``{"success", "data", "message"}``
    whose ``data`` is a bulk operation result.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_seconds: float = 30.0,
        validate_timeout_seconds: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self.timeout = httpx.Timeout(timeout_seconds, connect=CONNECT_TIMEOUT_SECONDS)
        self.validate_timeout = httpx.Timeout(validate_timeout_seconds, connect=CONNECT_TIMEOUT_SECONDS)
        self._http = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=self.timeout,
            transport=transport,
        )

    def __enter__(self) -> "UserImportClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def bulk_create(self, records: Sequence[ImportRecord]) -> DispatchOutcome:
        payload = {"users": [record.to_payload() for record in records]}
        try:
            response = self._http.post(BULK_IMPORT_PATH, json=payload, timeout=self.timeout)
        except httpx.TimeoutException as exc:
            return ServerError(f"request timed out: {exc}")
        except httpx.TransportError as exc:
            return ServerError(f"transport error: {exc}")

        return classify_response(response, default_message="Bulk import failed")

    def validate_only(self, records: Sequence[ImportRecord]) -> BulkOperationResult:
        payload = {"users": [record.to_payload() for record in records]}
        try:
            response = self._http.post(VALIDATE_PATH, json=payload, timeout=self.validate_timeout)
        except httpx.TransportError as exc:
            raise RemoteValidationError(f"validation request failed: {exc}") from exc

        outcome = classify_response(response, default_message="Validation failed")
        if isinstance(outcome, Success):
            return outcome.outcome
        raise RemoteValidationError(outcome.message)


def classify_response(response: httpx.Response, *, default_message: str) -> DispatchOutcome:
    status = response.status_code
    envelope = _read_envelope(response)
    message = envelope.get("message") if envelope else None
    if isinstance(message, list):
        message = "; ".join(str(item) for item in message)

    if 400 <= status < 500:
        return ClientError(str(message or f"HTTP {status}"), status_code=status)
    if status >= 500:
        return ServerError(str(message or f"HTTP {status}"), status_code=status)
    if envelope is None:
        return MalformedResponse("response body is not a JSON envelope", status_code=status)

    data = envelope.get("data")
    if not envelope.get("success") or not isinstance(data, dict):
        return MalformedResponse(str(message or default_message), status_code=status)

    try:
        return Success(BulkOperationResult.from_payload(data))
    except (AttributeError, TypeError, ValueError) as exc:
        logger.warning("unparseable bulk result", extra={"status_code": status, "error": str(exc)})
        return MalformedResponse(f"unparseable bulk result: {exc}", status_code=status)


def _read_envelope(response: httpx.Response) -> dict[str, object] | None:
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None
