import csv
import json
from pathlib import Path

from bulkimport.errors import FileTooLargeError, UnsupportedFileError


SUPPORTED_SUFFIXES = (".csv", ".jsonl")


def read_rows(input_path: Path, *, max_bytes: int) -> list[dict[str, object]]:
    if not input_path.exists():
        raise FileNotFoundError(f"input file not found: {input_path}")

    size = input_path.stat().st_size
    if size > max_bytes:
        raise FileTooLargeError(f"file size {size} bytes exceeds maximum of {max_bytes} bytes")

    suffix = input_path.suffix.lower()
    if suffix == ".csv":
        return read_csv_rows(input_path)
    if suffix == ".jsonl":
        return read_jsonl_rows(input_path)
    raise UnsupportedFileError(f"unsupported file format {suffix or '(none)'}, expected CSV or JSONL")


def read_csv_rows(input_path: Path) -> list[dict[str, object]]:
    with input_path.open("r", encoding="utf-8-sig", newline="") as infile:
        reader = csv.DictReader(infile)
        rows: list[dict[str, object]] = []
        for row in reader:
            if not any((value or "").strip() for value in row.values() if isinstance(value, str)):
                continue
            # Surplus cells land under the None key; they are not columns.
            rows.append({key: value for key, value in row.items() if key is not None})
    return rows


def read_jsonl_rows(input_path: Path) -> list[dict[str, object]]:
    rows: list[dict[str, object]] = []
    with input_path.open("r", encoding="utf-8") as infile:
        for line_number, line in enumerate(infile, start=1):
            line = line.strip()
            if not line:
                continue
            row = json.loads(line)
            if not isinstance(row, dict):
                raise ValueError(f"line {line_number}: expected a JSON object")
            rows.append(row)
    return rows
