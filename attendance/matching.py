"""Multi-stage matching of scanned text against the roster."""

import logging

from attendance import ColumnMapping, MatchOutcome
from attendance.roster import Roster, to_canonical_string

log = logging.getLogger(__name__)

# Priority order: the first delimiter present in the scan is used for splitting
TOKEN_DELIMITERS = ('\t', '|', ',')


def _find_by_id(roster: Roster, id_column: str, token: str) -> int | None:
    """Return the index of the first record whose id equals ``token``."""
    if not id_column or not token:
        return None
    for index, record in enumerate(roster):
        candidate = to_canonical_string(record.get(id_column))
        if candidate and candidate == token:
            return index
    return None


def _find_by_email(roster: Roster, email_column: str, token: str) -> int | None:
    """Return the index of the first record whose email equals ``token`` (case-insensitive)."""
    if not email_column or not token:
        return None
    wanted = token.lower()
    for index, record in enumerate(roster):
        candidate = to_canonical_string(record.get(email_column)).lower()
        if candidate and candidate == wanted:
            return index
    return None


def split_tokens(text: str) -> list[str]:
    """Split a delimited scan payload into trimmed, non-empty tokens.

    Only the first delimiter found (tab, pipe, comma) is used. Returns an
    empty list when the text contains none of them.
    """
    for delimiter in TOKEN_DELIMITERS:
        if delimiter in text:
            return [part.strip() for part in text.split(delimiter) if part.strip()]
    return []


def match_scan(scanned_text: str, roster: Roster, mapping: ColumnMapping) -> MatchOutcome:
    """Resolve a scanned string to at most one roster record.

    Stages, first hit wins:
    1. Exact ID match on the whole (trimmed) text
    2. Case-insensitive email match on the whole text
    3. Delimited payload: ID match per token, then email match for
       tokens containing '@'
    4. No match → record is None

    Args:
        scanned_text: Decoded text from the scanner.
        roster: Loaded attendee roster.
        mapping: Role to column mapping (empty roles are skipped).

    Returns:
        MatchOutcome with the record (or None) and the token that matched.
    """
    text = (scanned_text or '').strip()
    id_column = mapping.column('id')
    email_column = mapping.column('email')

    # Stage 1: Exact ID
    index = _find_by_id(roster, id_column, text)
    if index is not None:
        log.debug("ID-Treffer fuer '%s' in Zeile %d", text, index)
        return MatchOutcome(roster[index], text, index)

    # Stage 2: Exact email
    index = _find_by_email(roster, email_column, text)
    if index is not None:
        log.debug("E-Mail-Treffer fuer '%s' in Zeile %d", text, index)
        return MatchOutcome(roster[index], text, index)

    # Stage 3: Tokenized payload
    tokens = split_tokens(text)
    for token in tokens:
        index = _find_by_id(roster, id_column, token)
        if index is not None:
            log.debug("ID-Treffer ueber Teilwert '%s' in Zeile %d", token, index)
            return MatchOutcome(roster[index], token, index)

    for token in tokens:
        if '@' not in token:
            continue
        index = _find_by_email(roster, email_column, token)
        if index is not None:
            log.debug("E-Mail-Treffer ueber Teilwert '%s' in Zeile %d", token, index)
            return MatchOutcome(roster[index], token, index)

    # Stage 4: No match
    return MatchOutcome(None, text, None)
