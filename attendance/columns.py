"""Heuristic column-role suggestion for freshly loaded rosters."""

import logging
import re
from typing import Any, Mapping, Sequence

from rapidfuzz.distance import JaroWinkler

from attendance import ColumnMapping, ROLES
from attendance.roster import to_canonical_string

log = logging.getLogger(__name__)

# Minimum Jaro-Winkler similarity between a header and a role alias
DEFAULT_ALIAS_THRESHOLD = 0.88

ROLE_ALIASES: dict[str, tuple[str, ...]] = {
    'id': ('id', 'ticket id', 'ticket', 'uid', 'registration id', 'reg no',
           'participant id', 'attendee id', 'qr code', 'code'),
    'name': ('name', 'full name', 'participant name', 'attendee name',
             'guest name', 'participant', 'attendee'),
    'email': ('email', 'e mail', 'email address', 'mail'),
    'team': ('team', 'team name', 'group', 'organization', 'squad'),
    'event': ('event', 'event name', 'competition', 'track'),
    'payment': ('payment', 'payment status', 'paid', 'status', 'fee'),
}

# Substrings that decide a role on their own (checked before fuzzy aliases)
ROLE_KEYWORDS: dict[str, tuple[str, ...]] = {
    'email': ('email', 'e-mail', 'mail'),
    'team': ('team',),
    'event': ('event',),
    'payment': ('payment', 'status'),
}

_EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def _normalize_header(header: str) -> str:
    """Lower-case a header and reduce punctuation to single spaces."""
    s = re.sub(r'[^0-9a-z]+', ' ', str(header).lower())
    return s.strip()


def _alias_score(header: str, role: str) -> float:
    norm = _normalize_header(header)
    if not norm:
        return 0.0
    best = 0.0
    for alias in ROLE_ALIASES[role]:
        if norm == alias:
            return 1.0
        best = max(best, JaroWinkler.similarity(norm, alias))
    return best


def _best_header(
    headers: Sequence[str],
    role: str,
    taken: set[str],
    threshold: float,
) -> str:
    """Return the free header scoring highest for ``role``, '' if none passes."""
    best_header = ''
    best_score = 0.0
    for header in headers:
        if header in taken:
            continue
        score = _alias_score(header, role)
        if score > best_score:
            best_score = score
            best_header = header
    if best_score < threshold:
        return ''
    return best_header


def _keyword_header(headers: Sequence[str], role: str, taken: set[str]) -> str:
    for header in headers:
        if header in taken:
            continue
        lowered = header.lower()
        if any(kw in lowered for kw in ROLE_KEYWORDS[role]):
            return header
    return ''


def _email_shaped_header(
    headers: Sequence[str],
    first_row: Mapping[str, Any],
    taken: set[str],
) -> str:
    for header in headers:
        if header not in taken and _EMAIL_RE.match(to_canonical_string(first_row.get(header))):
            return header
    return ''


def suggest_mapping(
    headers: Sequence[str],
    first_row: Mapping[str, Any] | None = None,
    alias_threshold: float = DEFAULT_ALIAS_THRESHOLD,
) -> ColumnMapping:
    """Suggest which roster column plays which role.

    Roles are assigned in priority order (id, name, email, team, event,
    payment); a column claimed by one role is not offered to the next.
    ``id`` and ``name`` always resolve to some column when the header has
    one, falling back to the first and second column respectively.

    Args:
        headers: Roster column names in file order.
        first_row: First data row, used to spot email-shaped values.
        alias_threshold: Minimum header/alias similarity (0-1).

    Returns:
        A ColumnMapping validated against ``headers``.
    """
    headers = [h for h in headers if h]
    if not headers:
        return ColumnMapping()

    taken: set[str] = set()
    chosen: dict[str, str] = {}

    for role in ROLES:
        column = ''
        if role in ROLE_KEYWORDS:
            column = _keyword_header(headers, role, taken)
        if not column:
            column = _best_header(headers, role, taken, alias_threshold)
        if not column and role == 'email' and first_row:
            column = _email_shaped_header(headers, first_row, taken)
        if not column and role == 'id':
            column = headers[0]
        if not column and role == 'name':
            free = [h for h in headers if h not in taken]
            column = free[0] if free else (headers[1] if len(headers) > 1 else headers[0])
        if column:
            taken.add(column)
        chosen[role] = column

    mapping = ColumnMapping(**chosen).validated(headers)
    log.info(
        "Spaltenzuordnung: %s",
        ', '.join(f"{role}={mapping.column(role) or '-'}" for role in ROLES),
    )
    return mapping


def apply_overrides(
    mapping: ColumnMapping,
    headers: Sequence[str],
    overrides: Mapping[str, str | None],
) -> ColumnMapping:
    """Replace mapping slots with explicit column names.

    ``None`` leaves a slot untouched, ``''`` clears it.

    Raises:
        ValueError: If an override names a column that is not in ``headers``.
    """
    values = {role: mapping.column(role) for role in ROLES}
    for role, column in overrides.items():
        if column is None:
            continue
        if column and column not in headers:
            raise ValueError(f"Spalte '{column}' fuer Rolle '{role}' existiert nicht.")
        values[role] = column
    return ColumnMapping(**values)
