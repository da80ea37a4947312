"""Roster loading (CSV/XLSX) and identifier canonicalization."""

import csv
import io
import logging
import re
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping, Sequence

from openpyxl import load_workbook

from attendance import Record

log = logging.getLogger(__name__)

# Matches any sequence of whitespace (including Unicode whitespace like U+2006)
_WHITESPACE_RE = re.compile(r'\s+')

# Checked in this order against the header line
_CSV_DELIMITERS = ('\t', ';', ',')


def to_canonical_string(value: Any) -> str:
    """Convert a cell value to the trimmed string used for comparisons.

    Spreadsheet readers hand out numeric IDs as floats (``123.0``), so
    integral floats lose their fractional part. Booleans are rendered
    lower-case and ``None`` becomes the empty string.

    Args:
        value: Raw cell value.

    Returns:
        Trimmed string representation.
    """
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


class Roster:
    """Immutable, ordered table of attendee records sharing one header."""

    def __init__(self, records: Iterable[Record], headers: Sequence[str] | None = None):
        records = list(records)
        if not records:
            raise ValueError("Die Teilnehmerliste enthaelt keine Zeilen.")

        if headers is None:
            # Union of all keys in first-seen order
            seen: dict[str, None] = {}
            for rec in records:
                for key in rec:
                    seen.setdefault(key, None)
            headers = list(seen)
        if not headers:
            raise ValueError("Die Teilnehmerliste hat keine Spalten.")

        self._headers = tuple(headers)
        known = set(self._headers)
        frozen = []
        for row_num, rec in enumerate(records):
            extra = set(rec) - known
            if extra:
                raise ValueError(
                    f"Zeile {row_num} enthaelt unbekannte Spalten: {', '.join(sorted(extra))}"
                )
            frozen.append(MappingProxyType({h: rec.get(h) for h in self._headers}))
        self._records = tuple(frozen)

    @property
    def headers(self) -> tuple[str, ...]:
        """Column names in file order."""
        return self._headers

    @property
    def records(self) -> tuple[Mapping[str, Any], ...]:
        """Read-only records in roster order."""
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Mapping[str, Any]]:
        return iter(self._records)

    def __getitem__(self, index: int) -> Mapping[str, Any]:
        return self._records[index]

    def __repr__(self) -> str:
        return f"Roster({len(self._records)} rows, columns={list(self._headers)!r})"


def detect_encoding(path: Path) -> str:
    """Detect file encoding by checking for BOM bytes.

    Args:
        path: Path to the CSV file.

    Returns:
        Encoding string suitable for open().
    """
    with open(path, 'rb') as f:
        bom = f.read(2)
    if bom == b'\xff\xfe':
        return 'utf-16-le'
    return 'utf-8-sig'


def normalize_whitespace(value: str) -> str:
    """Collapse any whitespace run into a single space and strip the ends."""
    return _WHITESPACE_RE.sub(' ', value).strip()


def detect_delimiter(header_line: str) -> str:
    """Pick the CSV delimiter used in the header line (tab, semicolon, comma)."""
    for delimiter in _CSV_DELIMITERS:
        if delimiter in header_line:
            return delimiter
    return ','


def _read_csv(path: Path) -> tuple[list[str], list[dict[str, Any]]]:
    encoding = detect_encoding(path)
    with open(path, 'r', encoding=encoding, newline='') as f:
        content = f.read()

    # Strip BOM if present
    content = content.lstrip('\ufeff')
    header_line = content.split('\n', 1)[0]

    reader = csv.DictReader(io.StringIO(content), delimiter=detect_delimiter(header_line))
    if not reader.fieldnames:
        raise ValueError(f"Datei {path} ist leer oder hat keine Header-Zeile.")
    headers = [normalize_whitespace(c) for c in reader.fieldnames]

    rows: list[dict[str, Any]] = []
    for row_num, row in enumerate(reader, start=2):
        if None in row:
            log.warning("Zeile %d in %s hat ueberzaehlige Felder, ignoriert.", row_num, path)
        cleaned = {normalize_whitespace(k): normalize_whitespace(v or '')
                   for k, v in row.items() if k is not None}
        if not any(cleaned.values()):
            continue
        rows.append(cleaned)
    return headers, rows


def _read_xlsx(path: Path, sheet: str | None) -> tuple[list[str], list[dict[str, Any]]]:
    wb = load_workbook(str(path), read_only=True, data_only=True)
    try:
        if not wb.sheetnames:
            raise ValueError(f"Arbeitsmappe {path} enthaelt keine Tabellenblaetter.")
        ws = wb[sheet] if sheet else wb[wb.sheetnames[0]]

        row_iter = ws.iter_rows(values_only=True)
        header_row = next(row_iter, None)
        if header_row is None or not any(c is not None for c in header_row):
            raise ValueError(f"Datei {path} ist leer oder hat keine Header-Zeile.")

        # Unnamed columns are dropped, like a spreadsheet-to-records export does
        columns = [
            (pos, normalize_whitespace(str(c)))
            for pos, c in enumerate(header_row) if c is not None and str(c).strip()
        ]
        headers = [name for _, name in columns]

        rows: list[dict[str, Any]] = []
        for values in row_iter:
            if values is None or all(v is None or str(v).strip() == '' for v in values):
                continue
            row: dict[str, Any] = {}
            for pos, name in columns:
                value = values[pos] if pos < len(values) else None
                row[name] = value.strip() if isinstance(value, str) else value
            rows.append(row)
        return headers, rows
    finally:
        wb.close()


def read_roster(path: str | Path, sheet: str | None = None) -> Roster:
    """Read an attendee roster from a CSV or XLSX file.

    CSV files may be UTF-16LE (with BOM) or UTF-8 and use tab, semicolon
    or comma as delimiter. For XLSX files the first sheet is used unless
    ``sheet`` names another one. Completely empty rows are skipped.

    Args:
        path: Path to the roster file.
        sheet: Worksheet name (XLSX only).

    Returns:
        The loaded Roster.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file has no header row or no data rows.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Datei nicht gefunden: {path}")

    if path.suffix.lower() in ('.xlsx', '.xlsm'):
        headers, rows = _read_xlsx(path, sheet)
    else:
        headers, rows = _read_csv(path)

    if not rows:
        raise ValueError(f"Datei {path} enthaelt keine Datenzeilen.")

    roster = Roster(rows, headers)
    log.info("%d Teilnehmer gelesen aus %s", len(roster), path)
    return roster
