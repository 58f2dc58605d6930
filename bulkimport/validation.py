from collections.abc import Mapping, Sequence
from dataclasses import dataclass
import re

from bulkimport.schemas import ImportRecord, ValidationError, ValidationResult


MAX_ROWS = 1000
REQUIRED_HEADERS = ("username", "email", "password", "userType")
OPTIONAL_HEADERS = ("firstName", "lastName", "isActive")
USER_TYPES = {1: "Manager", 2: "Worker", 3: "Student"}

USERNAME_RE = re.compile(r"[A-Za-z0-9_]+")
EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
PASSWORD_SYMBOLS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?"
ACTIVE_VALUES = {"true": True, "1": True, "false": False, "0": False}

# Data rows are numbered as a spreadsheet shows them: 1-based, after the header row.
FIRST_DATA_ROW = 2


@dataclass(frozen=True)
class HeaderCheck:
    valid: bool
    missing: tuple[str, ...]
    extra: tuple[str, ...]


def check_headers(headers: Sequence[str]) -> HeaderCheck:
    normalized = [str(header).strip().lower() for header in headers]
    expected = {header.lower() for header in REQUIRED_HEADERS + OPTIONAL_HEADERS}

    missing = tuple(header for header in REQUIRED_HEADERS if header.lower() not in normalized)
    extra = tuple(header for header in normalized if header not in expected)
    return HeaderCheck(valid=not missing, missing=missing, extra=extra)


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.fullmatch(email))


def is_strong_password(password: str) -> bool:
    if len(password) < 8:
        return False
    if not any(char.isupper() and char.isascii() for char in password):
        return False
    if not any(char.islower() and char.isascii() for char in password):
        return False
    if not any(char in "0123456789" for char in password):
        return False
    return any(char in PASSWORD_SYMBOLS for char in password)


def validate_rows(rows: Sequence[Mapping[str, object]], *, max_rows: int = MAX_ROWS) -> ValidationResult:
    """Screen raw rows into importable records and row-level errors.

    File-level problems (too many rows, missing columns) are reported at row 0
    and do not stop the per-row checks. A row with any field error contributes
    no record. Rows repeating the username or email of an earlier accepted row
    are rejected as duplicates.
    """
    errors: list[ValidationError] = []
    valid_records: list[ImportRecord] = []

    if len(rows) > max_rows:
        errors.append(
            ValidationError(
                row=0,
                field="file",
                value=len(rows),
                message=f"File contains {len(rows)} rows, maximum allowed is {max_rows}",
            )
        )

    if rows:
        headers = [str(key) for key in rows[0].keys()]
        for header in check_headers(headers).missing:
            errors.append(
                ValidationError(
                    row=0,
                    field="headers",
                    value=", ".join(headers),
                    message=f"Missing required column: {header}",
                )
            )

    seen_usernames: set[str] = set()
    seen_emails: set[str] = set()

    for index, raw_row in enumerate(rows):
        row_number = index + FIRST_DATA_ROW
        row = _normalize_keys(raw_row)
        record, row_errors = _validate_row(row, row_number)

        if record is not None:
            if record.username.lower() in seen_usernames:
                row_errors.append(
                    ValidationError(row_number, "username", record.username, "Duplicate username in file")
                )
            if record.email.lower() in seen_emails:
                row_errors.append(ValidationError(row_number, "email", record.email, "Duplicate email in file"))

        if row_errors:
            errors.extend(row_errors)
            continue

        seen_usernames.add(record.username.lower())
        seen_emails.add(record.email.lower())
        valid_records.append(record)

    return ValidationResult(
        valid=not errors,
        errors=tuple(errors),
        valid_records=tuple(valid_records),
        total_rows=len(rows),
        valid_rows=len(valid_records),
        invalid_rows=len(rows) - len(valid_records),
    )


def _validate_row(row: dict[str, object], row_number: int) -> tuple[ImportRecord | None, list[ValidationError]]:
    row_errors: list[ValidationError] = []

    username_raw = row.get("username")
    username = _text(username_raw)
    if not username.strip():
        row_errors.append(ValidationError(row_number, "username", username_raw, "Username is required"))
    elif not USERNAME_RE.fullmatch(username):
        row_errors.append(
            ValidationError(
                row_number,
                "username",
                username_raw,
                "Username can only contain letters, numbers, and underscores",
            )
        )

    email_raw = row.get("email")
    email = _text(email_raw)
    if not email.strip():
        row_errors.append(ValidationError(row_number, "email", email_raw, "Email is required"))
    elif not is_valid_email(email):
        row_errors.append(ValidationError(row_number, "email", email_raw, "Invalid email format"))

    password_raw = row.get("password")
    password = _text(password_raw)
    if not password.strip():
        row_errors.append(ValidationError(row_number, "password", password_raw, "Password is required"))
    elif not is_strong_password(password):
        row_errors.append(
            ValidationError(
                row_number,
                "password",
                "***",
                "Password must be at least 8 characters with uppercase, lowercase, number, and special character",
            )
        )

    user_type_raw = row.get("usertype")
    user_type = _parse_int(user_type_raw)
    if user_type not in USER_TYPES:
        row_errors.append(
            ValidationError(
                row_number,
                "userType",
                user_type_raw,
                "UserType must be 1 (Manager), 2 (Worker), or 3 (Student)",
            )
        )

    is_active = True
    is_active_raw = row.get("isactive")
    if is_active_raw is not None and _text(is_active_raw) != "":
        active_value = _text(is_active_raw).strip().lower()
        if active_value not in ACTIVE_VALUES:
            row_errors.append(ValidationError(row_number, "isActive", is_active_raw, "isActive must be true or false"))
        else:
            is_active = ACTIVE_VALUES[active_value]

    if row_errors:
        return None, row_errors

    return (
        ImportRecord(
            username=username.strip(),
            email=email.strip(),
            password=password,
            user_type=user_type,
            is_active=is_active,
            first_name=_text(row.get("firstname")).strip() or None,
            last_name=_text(row.get("lastname")).strip() or None,
        ),
        row_errors,
    )


def _normalize_keys(row: Mapping[str, object]) -> dict[str, object]:
    return {str(key).strip().lower(): value for key, value in row.items()}


def _text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _parse_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = _text(value).strip()
    try:
        return int(text)
    except ValueError:
        pass
    # Integral numbers such as 2.0 count.
    try:
        number = float(text)
    except ValueError:
        return None
    return int(number) if number.is_integer() else None
