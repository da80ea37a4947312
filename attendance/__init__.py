"""Core module for event check-in and attendance tracking."""

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Mapping, Optional

# A roster row: column name -> scalar cell value (str, number, bool or None)
Record = Mapping[str, Any]

SUCCESS = 'SUCCESS'
NOT_FOUND = 'NOT_FOUND'
DUPLICATE = 'DUPLICATE'

ROLES = ('id', 'name', 'email', 'team', 'event', 'payment')


@dataclass(frozen=True)
class ColumnMapping:
    """Maps each role to a roster column name ('' = role not present)."""

    id: str = ''
    name: str = ''
    email: str = ''
    team: str = ''
    event: str = ''
    payment: str = ''

    def column(self, role: str) -> str:
        """Return the column name for a role, '' if unmapped."""
        if role not in ROLES:
            raise ValueError(f"Unbekannte Rolle: {role}")
        return (getattr(self, role) or '').strip()

    def validated(self, headers) -> 'ColumnMapping':
        """Return a copy where every slot not naming a header is blanked."""
        known = set(headers)
        return ColumnMapping(**{
            f.name: getattr(self, f.name) if getattr(self, f.name) in known else ''
            for f in fields(self)
        })


@dataclass(frozen=True)
class ScanEvent:
    """A decoded scan as delivered by the capture subsystem."""

    text: str
    captured_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class MatchOutcome:
    """Result of resolving a scan against the roster."""

    record: Optional[Record] = field(hash=False)
    matched_token: str
    row_index: Optional[int] = None


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of a single verification, as stored in the log."""

    status: str           # SUCCESS, NOT_FOUND, DUPLICATE
    scanned_value: str    # token shown to the operator
    matched_id: str       # dedup key the decision was made on
    timestamp: datetime
    record: Optional[Record] = field(default=None, hash=False)  # mapping proxies are unhashable
    row_index: Optional[int] = None
    message: str = ''
    entry_id: str = ''    # assigned by VerificationLog.append
