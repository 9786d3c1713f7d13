"""OAuth scope sets and scope reconciliation.

``RequiredScopes`` is the process-wide set of scopes the stored grant must
cover. It starts from ``BASE_SCOPES`` and only ever grows: once a service
wrapper requires a scope it stays required until the process exits.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

GOOGLE_SCOPE_PREFIX = "https://www.googleapis.com/auth/"

CALENDAR_SCOPES = (
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
)
GMAIL_SCOPES = (
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.labels",
)
DRIVE_READONLY_SCOPE = "https://www.googleapis.com/auth/drive.readonly"
DRIVE_FILE_SCOPE = "https://www.googleapis.com/auth/drive.file"
DOCS_SCOPE = "https://www.googleapis.com/auth/documents"
SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"

# Granted on first authentication
BASE_SCOPES = (*CALENDAR_SCOPES, *GMAIL_SCOPES, DRIVE_READONLY_SCOPE)

# Logical capability -> scopes a service wrapper needs
SERVICE_SCOPES: dict[str, tuple[str, ...]] = {
    "calendar": CALENDAR_SCOPES,
    "gmail": GMAIL_SCOPES,
    "drive": (DRIVE_READONLY_SCOPE,),
    "drive_write": (DRIVE_FILE_SCOPE,),
    "docs": (DOCS_SCOPE,),
    "sheets": (SHEETS_SCOPE,),
}


def parse_scopes(scopes: str | Iterable[str] | None) -> list[str]:
    """Normalize a scope string or iterable into a de-duplicated list.

    Args:
        scopes: Space-delimited scope string, iterable of scopes, or None.

    Returns:
        Scopes in first-seen order, without blanks or duplicates.
    """
    if scopes is None:
        return []
    items = scopes.split() if isinstance(scopes, str) else scopes
    return list(dict.fromkeys(s.strip() for s in items if s and s.strip()))


@dataclass(frozen=True)
class ScopeDiff:
    """Result of comparing granted scopes against required scopes.

    Attributes:
        missing: Required scopes absent from the grant.
        extra: Granted scopes nobody requires.
    """

    missing: list[str] = field(default_factory=list)
    extra: list[str] = field(default_factory=list)

    @property
    def is_sufficient(self) -> bool:
        return not self.missing


def diff_scopes(
    current: str | Iterable[str] | None, required: str | Iterable[str] | None
) -> ScopeDiff:
    """Compare granted scopes against required scopes as sets."""
    current_list = parse_scopes(current)
    required_list = parse_scopes(required)
    granted = set(current_list)
    wanted = set(required_list)
    return ScopeDiff(
        missing=[s for s in required_list if s not in granted],
        extra=[s for s in current_list if s not in wanted],
    )


def has_all_scopes(
    current: str | Iterable[str] | None, required: str | Iterable[str] | None
) -> bool:
    """True if every required scope is granted."""
    return set(parse_scopes(required)) <= set(parse_scopes(current))


def short_scope_name(scope: str) -> str:
    """Strip the Google scope URL prefix for display."""
    return scope.removeprefix(GOOGLE_SCOPE_PREFIX)


class RequiredScopes:
    """Append-only set of scopes the stored grant must cover.

    Example:
        ```python
        required = RequiredScopes()
        required.add(SERVICE_SCOPES["sheets"])
        "https://www.googleapis.com/auth/spreadsheets" in required  # True
        ```
    """

    def __init__(self, base: Iterable[str] = BASE_SCOPES) -> None:
        self._scopes: list[str] = parse_scopes(base)

    def add(self, scopes: str | Iterable[str]) -> list[str]:
        """Merge scopes into the required set.

        Returns:
            The scopes that were not already required.
        """
        added = [s for s in parse_scopes(scopes) if s not in self._scopes]
        self._scopes.extend(added)
        return added

    def as_list(self) -> list[str]:
        return list(self._scopes)

    def as_scope_string(self) -> str:
        return " ".join(self._scopes)

    def __contains__(self, scope: object) -> bool:
        return scope in self._scopes

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._scopes))

    def __len__(self) -> int:
        return len(self._scopes)
