"""Verification decision, duplicate tracking and the scan log."""

import dataclasses
import logging
import uuid
from datetime import datetime
from typing import Iterator

from attendance import (
    ColumnMapping,
    DUPLICATE,
    NOT_FOUND,
    SUCCESS,
    ScanEvent,
    VerificationResult,
)
from attendance.matching import match_scan
from attendance.roster import Roster, to_canonical_string

log = logging.getLogger(__name__)

# NOT_FOUND scans longer than this are shortened for display
MAX_DISPLAY_LENGTH = 30

MSG_DUPLICATE = 'Already verified.'
MSG_NOT_FOUND = 'ID not found in list.'


def truncate_for_display(text: str, limit: int = MAX_DISPLAY_LENGTH) -> str:
    """Shorten text to ``limit`` characters, marking the cut with '...'."""
    if len(text) > limit:
        return text[:limit] + '...'
    return text


class DedupTracker:
    """Identifiers already checked in during the current session."""

    def __init__(self) -> None:
        self._seen: set[str] = set()

    def __contains__(self, key: str) -> bool:
        return key in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def add(self, key: str) -> None:
        """Mark a key as checked in."""
        self._seen.add(key)

    def clear(self) -> None:
        """Forget all keys."""
        self._seen.clear()


class VerificationLog:
    """Append-only, ordered history of verification results."""

    def __init__(self) -> None:
        self._entries: list[VerificationResult] = []

    def append(self, result: VerificationResult) -> VerificationResult:
        """Store a result under a fresh entry id and return the stored entry."""
        entry = dataclasses.replace(result, entry_id=uuid.uuid4().hex)
        self._entries.append(entry)
        return entry

    def snapshot(self) -> tuple[VerificationResult, ...]:
        """Return the entries as an immutable tuple."""
        return tuple(self._entries)

    def clear(self) -> None:
        """Remove all entries (new session only)."""
        self._entries.clear()

    def __iter__(self) -> Iterator[VerificationResult]:
        return iter(tuple(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


def dedup_key(
    record,
    matched_token: str,
    mapping: ColumnMapping,
    row_index: int | None = None,
) -> str:
    """Return the key a scan is deduplicated on.

    The canonical roster id when the record is known and has one, the
    roster position ('#row<index>') for a known record without id, and
    the literal matched token only for unmatched scans.
    """
    if record is None:
        return matched_token
    id_column = mapping.column('id')
    if id_column:
        canonical = to_canonical_string(record.get(id_column))
        if canonical:
            return canonical
    return f'#row{row_index}'


def verify(
    event: ScanEvent,
    roster: Roster,
    mapping: ColumnMapping,
    tracker: DedupTracker,
    scan_log: VerificationLog,
) -> VerificationResult:
    """Verify one scan and record the outcome.

    Every call appends exactly one entry to ``scan_log``. The tracker is
    only changed by a first-time SUCCESS.

    Args:
        event: The decoded scan.
        roster: Loaded attendee roster.
        mapping: Role to column mapping.
        tracker: Session duplicate tracker.
        scan_log: Session verification log.

    Returns:
        The logged VerificationResult (with its entry id).

    Raises:
        ValueError: If no roster is loaded.
    """
    if roster is None:
        raise ValueError("Keine Teilnehmerliste geladen.")

    outcome = match_scan(event.text, roster, mapping)
    key = dedup_key(outcome.record, outcome.matched_token, mapping, outcome.row_index)

    if key in tracker:
        # Record stays None for unmatched text already in the tracker
        result = VerificationResult(
            status=DUPLICATE,
            scanned_value=outcome.matched_token,
            matched_id=key,
            timestamp=event.captured_at,
            record=outcome.record,
            row_index=outcome.row_index,
            message=MSG_DUPLICATE,
        )
    elif outcome.record is not None:
        tracker.add(key)
        result = VerificationResult(
            status=SUCCESS,
            scanned_value=outcome.matched_token,
            matched_id=key,
            timestamp=event.captured_at,
            record=outcome.record,
            row_index=outcome.row_index,
        )
    else:
        result = VerificationResult(
            status=NOT_FOUND,
            scanned_value=truncate_for_display(outcome.matched_token),
            matched_id=key,
            timestamp=event.captured_at,
            message=MSG_NOT_FOUND,
        )

    entry = scan_log.append(result)
    log.info("Scan '%s': %s", entry.scanned_value, entry.status)
    return entry


class CheckInSession:
    """Session state from roster load to reset.

    Owns the duplicate tracker and the verification log; roster and
    mapping are replaced only through ``load_roster``.
    """

    def __init__(self, roster: Roster | None = None, mapping: ColumnMapping | None = None):
        self.roster: Roster | None = None
        self.mapping = ColumnMapping()
        self.tracker = DedupTracker()
        self.log = VerificationLog()
        if roster is not None:
            self.load_roster(roster, mapping or ColumnMapping())

    def load_roster(self, roster: Roster, mapping: ColumnMapping) -> None:
        """Start a new session on ``roster``; earlier scans are discarded."""
        if roster is None:
            raise ValueError("Keine Teilnehmerliste angegeben.")
        validated = mapping.validated(roster.headers)
        if validated != mapping:
            log.warning("Spaltenzuordnung enthaelt unbekannte Spalten, diese werden ignoriert.")
        if not validated.column('id'):
            log.warning("Keine ID-Spalte zugeordnet, Abgleich nur ueber E-Mail bzw. Rohtext.")
        self.roster = roster
        self.mapping = validated
        self.tracker.clear()
        self.log.clear()
        log.info("Sitzung gestartet mit %d Teilnehmern.", len(roster))

    def reset(self) -> None:
        """Drop the roster and all scans."""
        self.roster = None
        self.mapping = ColumnMapping()
        self.tracker.clear()
        self.log.clear()
        log.info("Sitzung zurueckgesetzt.")

    def verify(self, text: str, captured_at: datetime | None = None) -> VerificationResult:
        """Verify a scanned text against the session roster."""
        if captured_at is None:
            event = ScanEvent(text)
        else:
            event = ScanEvent(text, captured_at)
        return verify(event, self.roster, self.mapping, self.tracker, self.log)
