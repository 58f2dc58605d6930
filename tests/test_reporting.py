import json

from bulkimport.reporting import generate_error_report, write_json
from bulkimport.schemas import ValidationError


def test_error_report_quotes_every_cell() -> None:
    errors = [
        ValidationError(row=0, field="headers", value="username, email", message="Missing required column: password"),
        ValidationError(row=3, field="username", value='say "hi"', message="Username can only contain letters"),
        ValidationError(row=4, field="email", value=None, message="Email is required"),
    ]

    report = generate_error_report(errors)

    assert report.splitlines() == [
        "Row,Field,Value,Error Message",
        '"0","headers","username, email","Missing required column: password"',
        '"3","username","say ""hi""","Username can only contain letters"',
        '"4","email","","Email is required"',
    ]


def test_error_report_without_errors_is_header_only() -> None:
    assert generate_error_report([]) == "Row,Field,Value,Error Message"


def test_write_json_creates_parents(tmp_path) -> None:
    target = tmp_path / "nested" / "report.json"

    write_json(target, {"b": 1, "a": 2})

    assert json.loads(target.read_text(encoding="utf-8")) == {"a": 2, "b": 1}
