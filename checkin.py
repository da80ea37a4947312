"""event-checkin – CLI zum Abgleich gescannter QR-Codes mit einer Teilnehmerliste."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Iterable, TextIO

from attendance import ColumnMapping, DUPLICATE, ROLES, SUCCESS, VerificationResult
from attendance.columns import apply_overrides, suggest_mapping
from attendance.report import (
    build_report,
    compute_stats,
    payment_status,
    print_summary,
    report_columns,
    write_csv_report,
    write_html_report,
    write_xlsx_report,
)
from attendance.roster import read_roster, to_canonical_string
from attendance.verification import CheckInSession

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        description='Check-in von Teilnehmern per QR-Scan gegen eine Teilnehmerliste.',
        prog='checkin.py',
    )
    parser.add_argument(
        '--roster', required=True, type=Path,
        help='Pfad zur Teilnehmerliste (CSV oder XLSX)',
    )
    parser.add_argument(
        '--sheet',
        help='Tabellenblatt der XLSX-Datei (Standard: erstes Blatt)',
    )
    parser.add_argument(
        '--scans', type=Path,
        help='Datei mit einem Scan pro Zeile (Standard: stdin)',
    )
    parser.add_argument(
        '--output', type=Path,
        help='Pfad fuer den Anwesenheits-Report (.csv oder .xlsx)',
    )
    parser.add_argument(
        '--delimiter', default=';',
        help='Trennzeichen fuer den CSV-Report (Standard: ;)',
    )
    parser.add_argument(
        '--html', action='store_true',
        help='Zusaetzlich einen HTML-Report erzeugen (erfordert --output)',
    )
    parser.add_argument(
        '--summary', action='store_true',
        help='Zusammenfassung auf stdout ausgeben',
    )
    parser.add_argument(
        '--verbose', action='store_true',
        help='Debug-Ausgaben aktivieren',
    )
    for role in ROLES:
        parser.add_argument(
            f'--{role}-column', dest=f'{role}_column',
            help=f'Spalte fuer Rolle "{role}" (ueberschreibt die Erkennung, "" = keine)',
        )
    return parser


def describe_result(result: VerificationResult, mapping: ColumnMapping) -> str:
    """Format a verification result as a single operator-facing line."""
    if result.record is None:
        return f"{result.status:<10} {result.scanned_value}  {result.message}".rstrip()

    record = result.record
    name_column = mapping.column('name')
    name = to_canonical_string(record.get(name_column)) if name_column else ''
    parts = [f"{result.status:<10} {name or 'N/A'} [{result.matched_id}]"]

    if result.status == SUCCESS:
        for role, label in (('team', 'Team'), ('event', 'Event'), ('email', 'E-Mail')):
            column = mapping.column(role)
            if column:
                parts.append(f"{label}: {to_canonical_string(record.get(column)) or 'N/A'}")
        payment_column = mapping.column('payment')
        if payment_column:
            parts.append(f"Zahlung: {payment_status(record.get(payment_column))}")
    elif result.status == DUPLICATE:
        parts.append(result.message)

    return '  '.join(parts)


def read_scans(stream: TextIO) -> Iterable[str]:
    """Yield one scan per non-blank line, keeping inner tabs intact."""
    for line in stream:
        text = line.rstrip('\r\n')
        if text.strip():
            yield text


def run_session(session: CheckInSession, scans: Iterable[str], out: TextIO) -> None:
    """Feed every scan through the session and echo the outcome."""
    for text in scans:
        result = session.verify(text)
        print(describe_result(result, session.mapping), file=out)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s: %(message)s',
    )

    if args.html and not args.output:
        parser.error('--html erfordert --output.')

    try:
        roster = read_roster(args.roster, args.sheet)
    except (FileNotFoundError, ValueError, KeyError) as exc:
        log.error("Teilnehmerliste konnte nicht geladen werden: %s", exc)
        sys.exit(1)

    mapping = suggest_mapping(roster.headers, roster[0])
    overrides = {
        role: getattr(args, f'{role}_column')
        for role in ROLES
    }
    try:
        mapping = apply_overrides(mapping, roster.headers, overrides)
    except ValueError as exc:
        parser.error(str(exc))

    session = CheckInSession(roster, mapping)

    if args.scans:
        with open(args.scans, 'r', encoding='utf-8-sig') as f:
            run_session(session, read_scans(f), sys.stdout)
    else:
        log.info("Warte auf Scans (eine Zeile pro Scan, Ende mit Strg-D) ...")
        run_session(session, read_scans(sys.stdin), sys.stdout)

    rows = build_report(session.roster, session.log, session.mapping)
    stats = compute_stats(rows, session.log)

    if args.output:
        columns = report_columns(session.roster)
        if args.output.suffix.lower() == '.xlsx':
            write_xlsx_report(rows, columns, args.output)
        else:
            write_csv_report(rows, columns, args.output, args.delimiter)
        if args.html:
            write_html_report(
                rows, columns, args.output.with_suffix('.html'),
                args.roster.stem, stats,
            )

    if args.summary:
        print_summary(stats, args.roster.name)


if __name__ == '__main__':
    main()
