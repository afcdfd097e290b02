"""Source-format readers, format detection and column analysis."""

from __future__ import annotations

import csv
import io
import json
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from rdfforge.core.errors import InputValidationError

TABULAR_FORMATS = ("csv", "tsv", "json")
RDF_FORMATS = ("turtle", "ntriples", "jsonld", "rdfxml", "trig", "nquads")
UNSUPPORTED_FORMATS = ("xlsx", "parquet", "xml")

EXTENSIONS = {
    ".csv": "csv",
    ".tsv": "tsv",
    ".tab": "tsv",
    ".json": "json",
    ".ttl": "turtle",
    ".nt": "ntriples",
    ".jsonld": "jsonld",
    ".rdf": "rdfxml",
    ".owl": "rdfxml",
    ".trig": "trig",
    ".nq": "nquads",
    ".xlsx": "xlsx",
    ".xls": "xlsx",
    ".parquet": "parquet",
    ".xml": "xml",
}

COLUMN_TYPES = ("string", "integer", "decimal", "date", "datetime", "boolean")

_INTEGER = re.compile(r"^[+-]?\d+$")
_DECIMAL = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")
_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DATETIME = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?$")
_TRUE = {"true", "yes", "1"}
_FALSE = {"false", "no", "0"}


@dataclass
class Table:
    columns: list[str]
    rows: list[dict[str, Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)


@dataclass
class RowError:
    row: int  # 1-based data row number
    message: str


@dataclass
class ReadResult:
    table: Table
    errors: list[RowError] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.table.rows) + len(self.errors)

    @property
    def error_rate(self) -> float:
        return len(self.errors) / self.total_rows if self.total_rows else 0.0


# ─── Detection ───

def detect_encoding(head: bytes) -> str:
    if head.startswith(b"\xef\xbb\xbf"):
        return "utf-8-sig"
    if head.startswith((b"\xff\xfe", b"\xfe\xff")):
        return "utf-16"
    try:
        head.decode("utf-8")
        return "utf-8"
    except UnicodeDecodeError as e:
        # A multi-byte character cut at the end of the sample is still UTF-8
        if e.start >= len(head) - 3:
            return "utf-8"
        return "latin-1"


def sniff_delimiter(sample: str, default: str = ",") -> str:
    try:
        return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
    except csv.Error:
        return default


def detect_format(filename: str, head: bytes) -> dict:
    """Guess {format, encoding, delimiter, confidence} from a file name and its first bytes."""
    encoding = detect_encoding(head)
    text = head.decode(encoding, errors="replace").lstrip("\ufeff")
    stripped = text.lstrip()
    fmt = EXTENSIONS.get(Path(filename).suffix.lower())
    confidence = 0.9 if fmt else 0.0

    if fmt is None:
        if stripped.startswith(("@prefix", "@base", "PREFIX", "BASE")):
            fmt, confidence = "turtle", 0.8
        elif stripped.startswith(("{", "[")):
            fmt = "jsonld" if '"@context"' in stripped or '"@id"' in stripped else "json"
            confidence = 0.7
        elif stripped.startswith("<?xml") or stripped.startswith("<rdf:RDF"):
            fmt, confidence = ("rdfxml" if "rdf:RDF" in stripped else "xml"), 0.7
        elif stripped.startswith("<") and stripped.split("\n", 1)[0].rstrip().endswith("."):
            fmt, confidence = "ntriples", 0.6
        else:
            fmt, confidence = "csv", 0.5
    elif fmt == "json" and ('"@context"' in stripped or '"@id"' in stripped):
        fmt = "jsonld"

    delimiter = None
    if fmt in ("csv", "tsv"):
        sample = "\n".join(text.splitlines()[:20])
        delimiter = sniff_delimiter(sample, default="\t" if fmt == "tsv" else ",")
        if delimiter == "\t":
            fmt = "tsv"
    return {"format": fmt, "encoding": encoding, "delimiter": delimiter, "confidence": confidence}


# ─── Readers ───

def _column_names(header: list[str]) -> list[str]:
    names = []
    for index, name in enumerate(header):
        name = name.strip() or f"column_{index + 1}"
        while name in names:
            name = f"{name}_{index + 1}"
        names.append(name)
    return names


def read_csv_text(text: str, delimiter: str = ",", has_header: bool = True) -> ReadResult:
    """Read delimited text. Rows whose width differs from the header are reported, not kept."""
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    records = [r for r in reader if r and any(cell.strip() for cell in r)]
    if not records:
        return ReadResult(Table(columns=[]))

    if has_header:
        columns = _column_names(records[0])
        records = records[1:]
    else:
        columns = [f"column_{i + 1}" for i in range(len(records[0]))]

    result = ReadResult(Table(columns=columns))
    for number, record in enumerate(records, start=1):
        if len(record) != len(columns):
            result.errors.append(RowError(number, f"Expected {len(columns)} fields, found {len(record)}"))
            continue
        result.table.rows.append(dict(zip(columns, record)))
    return result


def read_json_text(text: str, records_path: str | None = None) -> ReadResult:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise InputValidationError(f"Invalid JSON: {e}", errors=[{"path": "content", "message": str(e)}]) from e

    if records_path:
        for key in records_path.split("."):
            if not isinstance(document, dict) or key not in document:
                raise InputValidationError(
                    f"Records path '{records_path}' not found",
                    errors=[{"path": "recordsPath", "message": f"missing key '{key}'"}],
                )
            document = document[key]
    if isinstance(document, dict):
        document = [document]
    if not isinstance(document, list):
        raise InputValidationError("JSON source must hold an array of objects")

    columns: list[str] = []
    result = ReadResult(Table(columns=columns))
    for number, record in enumerate(document, start=1):
        if not isinstance(record, dict):
            result.errors.append(RowError(number, f"Expected an object, found {type(record).__name__}"))
            continue
        for key in record:
            if key not in columns:
                columns.append(key)
        result.table.rows.append(record)
    return result


def read_table_file(
    path: str | Path,
    fmt: str,
    encoding: str = "utf-8",
    delimiter: str | None = None,
    has_header: bool = True,
    records_path: str | None = None,
) -> ReadResult:
    """Blocking read of a tabular file; callers run it in a worker thread."""
    if fmt in UNSUPPORTED_FORMATS:
        raise InputValidationError(f"Reading {fmt} sources is not supported", errors=[{"path": "format", "message": fmt}])
    if fmt not in TABULAR_FORMATS:
        raise InputValidationError(f"'{fmt}' is not a tabular format", errors=[{"path": "format", "message": fmt}])

    text = Path(path).read_text(encoding=encoding)
    if fmt == "json":
        return read_json_text(text, records_path)
    return read_csv_text(text, delimiter or ("\t" if fmt == "tsv" else ","), has_header)


# ─── Typing and analysis ───

def _is_null(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def classify_value(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, (float, Decimal)):
        return "decimal"
    if isinstance(value, datetime):
        return "datetime"
    if isinstance(value, date):
        return "date"
    if not isinstance(value, str):
        return "string"

    text = value.strip()
    if text.lower() in ("true", "false"):
        return "boolean"
    if _INTEGER.match(text):
        return "integer"
    if _DECIMAL.match(text):
        return "decimal"
    if _DATE.match(text):
        return "date"
    if _DATETIME.match(text):
        return "datetime"
    return "string"


def infer_column_type(values: list[Any]) -> str:
    kinds = {classify_value(v) for v in values if not _is_null(v)}
    if not kinds:
        return "string"
    if len(kinds) == 1:
        return kinds.pop()
    if kinds == {"integer", "decimal"}:
        return "decimal"
    if kinds == {"date", "datetime"}:
        return "datetime"
    return "string"


def analyze_table(table: Table, sample_size: int = 5) -> list[dict]:
    """ColumnInfo dicts: {name, type, nullable, null_count, unique_count, sample_values}."""
    columns = []
    for name in table.columns:
        values = [row.get(name) for row in table.rows]
        present = [v for v in values if not _is_null(v)]
        distinct = list(dict.fromkeys(json.dumps(v, default=str) if isinstance(v, (dict, list)) else str(v) for v in present))
        columns.append({
            "name": name,
            "type": infer_column_type(values),
            "nullable": len(present) < len(values),
            "null_count": len(values) - len(present),
            "unique_count": len(distinct),
            "sample_values": distinct[:sample_size],
        })
    return columns


def cast_value(value: Any, target: str) -> Any:
    """Convert one value to a column type. Null-like values become None.

    Raises:
        ValueError: If the value cannot be converted
    """
    if _is_null(value):
        return None
    if target == "string":
        return str(value)
    if target == "integer":
        if isinstance(value, bool):
            raise ValueError(f"cannot cast boolean {value} to integer")
        if isinstance(value, int):
            return value
        text = str(value).strip()
        if not _INTEGER.match(text):
            raise ValueError(f"'{value}' is not an integer")
        return int(text)
    if target == "decimal":
        try:
            return Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"'{value}' is not a decimal")
    if target == "boolean":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(f"'{value}' is not a boolean")
    if target == "date":
        return date.fromisoformat(str(value).strip())
    if target == "datetime":
        return datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    raise ValueError(f"Unknown column type '{target}'")
