from collections.abc import Sequence
import json
from pathlib import Path

from bulkimport.schemas import ValidationError


ERROR_REPORT_HEADERS = ("Row", "Field", "Value", "Error Message")


def generate_error_report(errors: Sequence[ValidationError]) -> str:
    lines = [",".join(ERROR_REPORT_HEADERS)]
    for error in errors:
        cells = [str(error.row), error.field, "" if error.value is None else str(error.value), error.message]
        lines.append(",".join(_quote(cell) for cell in cells))
    return "\n".join(lines)


def _quote(cell: str) -> str:
    return '"' + cell.replace('"', '""') + '"'


def write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as outfile:
        outfile.write(content)
        outfile.write("\n")


def write_jsonl(path: Path, rows: list[dict[str, object]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as outfile:
        for row in rows:
            outfile.write(json.dumps(row, sort_keys=True))
            outfile.write("\n")


def write_json(path: Path, payload: dict[str, object]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as outfile:
        json.dump(payload, outfile, indent=2, sort_keys=True)
        outfile.write("\n")
