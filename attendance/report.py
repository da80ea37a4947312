"""Attendance report: merge the scan log into the roster, write CSV/XLSX/HTML, summary."""

import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Hashable, Iterable, Mapping

from jinja2 import Environment, FileSystemLoader
from openpyxl import Workbook

from attendance import ColumnMapping, DUPLICATE, NOT_FOUND, SUCCESS, VerificationResult
from attendance.roster import Roster, to_canonical_string

log = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / 'templates'

STATUS_COLUMN = 'Attendance Status'
CHECKIN_COLUMN = 'Check-in Time'
PRESENT = 'Present'
ABSENT = 'Absent'

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'

XLSX_SHEET_NAME = 'Attendance Report'

PAID_VALUES = frozenset({'paid', 'done', 'yes', 'true', 'completed', 'received'})


def _attendance_key(record: Mapping[str, Any], row_index: int | None, id_column: str) -> Hashable:
    """Key a record by canonical id, or by roster position if it has none."""
    if id_column:
        canonical = to_canonical_string(record.get(id_column))
        if canonical:
            return ('id', canonical)
    return ('row', row_index)


def _first_checkins(
    scan_log: Iterable[VerificationResult],
    id_column: str,
) -> dict[Hashable, datetime]:
    """Map each checked-in attendee to the earliest SUCCESS timestamp."""
    checkins: dict[Hashable, datetime] = {}
    for entry in scan_log:
        if entry.status != SUCCESS or entry.record is None:
            continue
        key = _attendance_key(entry.record, entry.row_index, id_column)
        known = checkins.get(key)
        # Equal timestamps keep the entry logged first
        if known is None or entry.timestamp < known:
            checkins[key] = entry.timestamp
    return checkins


def report_columns(roster: Roster) -> list[str]:
    """Roster header followed by the two derived attendance columns."""
    columns = list(roster.headers)
    for derived in (STATUS_COLUMN, CHECKIN_COLUMN):
        if derived not in columns:
            columns.append(derived)
    return columns


def build_report(
    roster: Roster,
    scan_log: Iterable[VerificationResult],
    mapping: ColumnMapping,
) -> list[dict[str, Any]]:
    """Fold the verification log into the roster.

    Every roster record yields one row in roster order: the original
    fields plus ``Attendance Status`` (Present/Absent) and
    ``Check-in Time`` (earliest successful check-in, '' if absent).

    Args:
        roster: Loaded attendee roster.
        scan_log: Verification results of the session.
        mapping: Role to column mapping.

    Returns:
        List of flat report rows.
    """
    id_column = mapping.column('id')
    checkins = _first_checkins(scan_log, id_column)

    rows: list[dict[str, Any]] = []
    for index, record in enumerate(roster):
        checked_in = checkins.get(_attendance_key(record, index, id_column))
        row = dict(record)
        row[STATUS_COLUMN] = PRESENT if checked_in is not None else ABSENT
        row[CHECKIN_COLUMN] = checked_in.strftime(TIMESTAMP_FORMAT) if checked_in else ''
        rows.append(row)

    log.debug("Report erstellt: %d Zeilen, %d anwesend", len(rows), len(checkins))
    return rows


def payment_status(value: Any) -> str:
    """Return 'PAID' for a recognised paid marker, else the raw value or 'PENDING'."""
    text = to_canonical_string(value)
    if text.lower() in PAID_VALUES:
        return 'PAID'
    return text or 'PENDING'


def compute_stats(rows: list[dict[str, Any]], scan_log: Iterable[VerificationResult]) -> dict:
    """Compute summary statistics from report rows and the scan log."""
    entries = list(scan_log)
    total = len(rows)
    present = sum(1 for r in rows if r.get(STATUS_COLUMN) == PRESENT)
    return {
        'total': total,
        'present': present,
        'absent': total - present,
        'scans': len(entries),
        'success': sum(1 for e in entries if e.status == SUCCESS),
        'duplicate': sum(1 for e in entries if e.status == DUPLICATE),
        'not_found': sum(1 for e in entries if e.status == NOT_FOUND),
        'rate': round(present / total, 4) if total else 0.0,
    }


def write_csv_report(
    rows: list[dict[str, Any]],
    columns: list[str],
    output_path: Path,
    delimiter: str = ';',
) -> None:
    """Write report rows as CSV.

    Uses UTF-8 with BOM (utf-8-sig) so Excel picks up the encoding.

    Args:
        rows: Rows from build_report.
        columns: Column order, usually report_columns(roster).
        output_path: Path for the output CSV file.
        delimiter: Field delimiter.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', newline='', encoding='utf-8-sig') as f:
        writer = csv.DictWriter(
            f, fieldnames=columns, delimiter=delimiter, extrasaction='ignore',
        )
        writer.writeheader()
        for row in rows:
            writer.writerow({c: to_canonical_string(row.get(c)) for c in columns})

    log.info("CSV-Report geschrieben: %s (%d Zeilen)", output_path, len(rows))


def write_xlsx_report(
    rows: list[dict[str, Any]],
    columns: list[str],
    output_path: Path,
    sheet_name: str = XLSX_SHEET_NAME,
) -> None:
    """Write report rows as a single-sheet Excel workbook.

    Cells hold the same canonical strings as the CSV report.

    Args:
        rows: Rows from build_report.
        columns: Column order, usually report_columns(roster).
        output_path: Path for the output .xlsx file.
        sheet_name: Title of the worksheet.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name
    ws.append(columns)
    for row in rows:
        ws.append([to_canonical_string(row.get(c)) for c in columns])
    wb.save(output_path)

    log.info("XLSX-Report geschrieben: %s (%d Zeilen)", output_path, len(rows))


def write_html_report(
    rows: list[dict[str, Any]],
    columns: list[str],
    output_path: Path,
    title: str = '',
    stats: dict | None = None,
) -> None:
    """Write report rows as an HTML page using Jinja2."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=True,
    )
    env.filters['cell'] = to_canonical_string
    template = env.get_template('report.html')

    html = template.render(
        title=title,
        rows=rows,
        columns=columns,
        stats=stats or compute_stats(rows, []),
        status_column=STATUS_COLUMN,
        present=PRESENT,
    )

    output_path.write_text(html, encoding='utf-8')
    log.info("HTML-Report geschrieben: %s", output_path)


def print_summary(stats: dict, title: str = '') -> None:
    """Print a summary of the session to stdout."""
    print(f"\n=== Anwesenheit: {title} ===")
    print(f"Teilnehmer gesamt:         {stats['total']:>5}")
    print(f"Anwesend:                  {stats['present']:>5}")
    print(f"Abwesend:                  {stats['absent']:>5}")
    print(f"Quote:                     {stats['rate']:>8.1%}")
    print("---")
    print(f"Scans gesamt:              {stats['scans']:>5}")
    print(f"  - Erfolgreich:           {stats['success']:>5}")
    print(f"  - Doppelt:               {stats['duplicate']:>5}")
    print(f"  - Nicht gefunden:        {stats['not_found']:>5}")
    print()
