"""Statistics ingestion - read statistics records from exported files.

Supported sources:
- CSV/TSV export, one row per project, keyed by a ``projectId`` column
  (UTF-8 comma-delimited or UTF-16 LE tab-delimited)
- Excel workbook (.xlsx), same layout on the first sheet
- YAML or JSON file holding a single record, or a mapping of project id
  to record

Values are normalised against the variable registry: text variables keep
their raw string, everything else is parsed as a number (comma thousands
separators allowed).  Empty cells are dropped rather than stored as 0, so
"no data" stays distinguishable from a counted zero.
"""

import json
import logging
from pathlib import Path

import pandas as pd
import yaml

from fanstats.errors import ConfigurationError

logger = logging.getLogger(__name__)

ID_COLUMN = "projectId"

TABLE_SUFFIXES = (".csv", ".tsv", ".txt", ".xlsx", ".xlsm")
EXCEL_SUFFIXES = (".xlsx", ".xlsm")


# ---------------------------------------------------------------------------
# Value parsers
# ---------------------------------------------------------------------------

def parse_numeric(value):
    """Parse a numeric value that may contain commas or float artifacts.

    Examples:
        "63,571" -> 63571.0
        "1,138,771" -> 1138771.0
        "12.5" -> 12.5
        42 -> 42.0
        "" -> NaN
        NaN -> NaN
    """
    if isinstance(value, bool):
        return float("nan")
    if pd.isna(value):
        return float("nan")
    if isinstance(value, (int, float)):
        return float(value)
    s = str(value).strip().replace(",", "")
    if not s:
        return float("nan")
    try:
        return float(s)
    except ValueError:
        return float("nan")


def _compact(number: float):
    """Whole floats become ints so records read like the stored documents."""
    return int(number) if number.is_integer() else number


# ---------------------------------------------------------------------------
# Column cleaning
# ---------------------------------------------------------------------------

def clean_columns(df):
    """Strip whitespace and a leading byte-order mark from column names."""
    df.columns = [c.strip().lstrip("\ufeff") if isinstance(c, str) else c for c in df.columns]
    return df


# ---------------------------------------------------------------------------
# Encoding detection and CSV reading
# ---------------------------------------------------------------------------

def detect_encoding(path):
    """Detect whether a file is UTF-16 LE (with BOM) or UTF-8.

    Returns (encoding, delimiter) tuple.
    """
    with open(path, "rb") as f:
        raw = f.read(4)
    if raw[:2] == b"\xff\xfe":
        return "utf-16-le", "\t"
    if Path(path).suffix.lower() == ".tsv":
        return "utf-8", "\t"
    return "utf-8", ","


def read_csv_auto(path):
    """Read a CSV file with automatic encoding and delimiter detection.

    Every column is read as text; typing happens in :func:`normalize_record`.
    """
    encoding, sep = detect_encoding(path)
    df = pd.read_csv(path, encoding=encoding, sep=sep, dtype=str, keep_default_na=False)
    return clean_columns(df)


# ---------------------------------------------------------------------------
# Record normalisation
# ---------------------------------------------------------------------------

def normalize_record(raw, registry=None):
    """Type the values of one raw record.

    Args:
        raw: Mapping of field name to raw value (strings from CSV, or
            already-typed values from YAML/JSON).
        registry: Optional variable registry.  Fields registered as text are
            kept as strings; unregistered fields are numbers when they parse
            as one and strings otherwise.

    Returns:
        A new dict.  Empty values are omitted.
    """
    record = {}
    for name, value in raw.items():
        if name == ID_COLUMN:
            continue
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        variable = registry.get(name) if registry is not None else None
        if variable is not None and not variable.is_numeric:
            record[name] = str(value)
            continue
        number = parse_numeric(value)
        if pd.isna(number):
            if variable is not None:
                logger.warning("Dropping non-numeric value %r for %s", value, name)
                continue
            if isinstance(value, float):
                continue
            record[name] = str(value)
            continue
        record[name] = _compact(number)
    return record


def records_from_dataframe(df, registry=None, id_column=ID_COLUMN):
    """Convert a one-row-per-project DataFrame into ``{project_id: record}``."""
    if id_column not in df.columns:
        raise ConfigurationError(f"Statistics table has no {id_column!r} column")
    records = {}
    for row in df.to_dict(orient="records"):
        project_id = str(row.get(id_column, "")).strip()
        if not project_id:
            logger.warning("Skipping statistics row without %s", id_column)
            continue
        if project_id in records:
            logger.warning("Duplicate statistics row for project %r; last row wins", project_id)
        records[project_id] = normalize_record(row, registry)
    return records


def read_excel_table(path, sheet_name=0):
    """Read the first (or named) sheet of a workbook, every cell as text."""
    df = pd.read_excel(path, sheet_name=sheet_name, engine="openpyxl", dtype=str)
    df = df.fillna("")
    return clean_columns(df)


def read_statistics_table(path, registry=None):
    """Ingest a CSV/TSV/XLSX statistics export as ``{project_id: record}``."""
    path = Path(path)
    if path.suffix.lower() in EXCEL_SUFFIXES:
        df = read_excel_table(path)
    else:
        df = read_csv_auto(path)
    return records_from_dataframe(df, registry)


def _read_document(path):
    with open(path) as f:
        if path.suffix.lower() == ".json":
            return json.load(f)
        return yaml.safe_load(f)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def load_statistics(path, project_id=None, registry=None):
    """Load the statistics record for one project.

    Args:
        path: CSV/TSV/XLSX table, or YAML/JSON document.
        project_id: Row (table) or key (document) to select.  May be omitted
            for a table with a single row or a document holding one record.
        registry: Optional registry used to type values.

    Raises:
        ConfigurationError: If the project cannot be found in the file.
    """
    path = Path(path)
    if path.suffix.lower() in TABLE_SUFFIXES:
        records = read_statistics_table(path, registry)
        if project_id is None:
            if len(records) != 1:
                raise ConfigurationError(
                    f"{path} holds {len(records)} projects; pass a project id"
                )
            return next(iter(records.values()))
        if project_id not in records:
            raise ConfigurationError(f"No statistics row for project {project_id!r} in {path}")
        return records[project_id]

    data = _read_document(path) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} does not hold a statistics mapping")
    if project_id is not None and isinstance(data.get(project_id), dict):
        data = data[project_id]
    elif data and all(isinstance(v, dict) for v in data.values()):
        if project_id is None and len(data) == 1:
            data = next(iter(data.values()))
        else:
            raise ConfigurationError(f"No statistics record for project {project_id!r} in {path}")
    return normalize_record(data, registry)
