from dataclasses import dataclass, field


@dataclass(frozen=True)
class ImportRecord:
    username: str
    email: str
    password: str
    user_type: int
    is_active: bool = True
    first_name: str | None = None
    last_name: str | None = None

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "username": self.username,
            "email": self.email,
            "password": self.password,
            "userType": self.user_type,
            "isActive": self.is_active,
        }
        if self.first_name:
            payload["firstName"] = self.first_name
        if self.last_name:
            payload["lastName"] = self.last_name
        return payload


@dataclass(frozen=True)
class ValidationError:
    """One rejected field of one input row. Collected, never raised."""

    row: int
    field: str
    value: object
    message: str


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: tuple[ValidationError, ...]
    valid_records: tuple[ImportRecord, ...]
    total_rows: int
    valid_rows: int
    invalid_rows: int


@dataclass(frozen=True)
class RecordOutcome:
    identifier: str
    success: bool
    error: str | None = None
    data: dict[str, object] | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> "RecordOutcome":
        data = payload.get("data")
        error = payload.get("error")
        return cls(
            identifier=str(payload.get("identifier", "")),
            success=bool(payload.get("success", False)),
            error=str(error) if error is not None else None,
            data=dict(data) if isinstance(data, dict) else None,
        )

    def to_dict(self) -> dict[str, object]:
        result: dict[str, object] = {"identifier": self.identifier, "success": self.success}
        if self.error is not None:
            result["error"] = self.error
        if self.data is not None:
            result["data"] = self.data
        return result


@dataclass(frozen=True)
class BulkOperationResult:
    success_count: int
    failed_count: int
    total_count: int
    details: tuple[RecordOutcome, ...] = field(default_factory=tuple)

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> "BulkOperationResult":
        details = payload.get("details") or []
        return cls(
            success_count=int(payload.get("successCount", 0)),
            failed_count=int(payload.get("failedCount", 0)),
            total_count=int(payload.get("totalCount", 0)),
            details=tuple(RecordOutcome.from_payload(item) for item in details),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "successCount": self.success_count,
            "failedCount": self.failed_count,
            "totalCount": self.total_count,
            "details": [detail.to_dict() for detail in self.details],
        }


# The endpoint reports one batch with the same shape as the final aggregate.
BatchOutcome = BulkOperationResult


@dataclass(frozen=True)
class ImportProgress:
    total: int
    processed: int
    success: int
    failed: int
    percentage: int


@dataclass(frozen=True)
class ImportResult:
    run_id: int
    run_key: str
    source_file: str
    trigger_source: str
    status: str
    total_rows: int
    valid_rows: int
    invalid_rows: int
    success_count: int
    failed_count: int
    report_path: str | None
    error_report_path: str | None
    reused_existing_run: bool
