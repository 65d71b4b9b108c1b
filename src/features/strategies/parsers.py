"""Parse transforms from raw strategy output to usage snapshots.

Provider-specific response formats are opaque to the engine; each
strategy is configured with one of these transforms by name.
"""

import re
from collections.abc import Callable

from pydantic import ValidationError

from src.features.fetch.errors import FetchError, FetchErrorClass
from src.features.pty.ansi import strip_ansi
from src.features.snapshot.models import ProviderIdentity, UsageSnapshot, UsageWindow


SnapshotParser = Callable[[bytes | str], UsageSnapshot]

# "42% left", "42.5 % remaining", "58% used"
PERCENT_RE = re.compile(
    r"(?P<value>\d+(?:\.\d+)?)\s*%\s*(?P<kind>left|remaining|used)", re.IGNORECASE
)
RESET_RE = re.compile(r"resets?:?\s+(?P<when>[^\n]+?)\s*(?:\n|$)", re.IGNORECASE)
EMAIL_RE = re.compile(
    r"(?:account|email)\s*:?\s*(?P<email>[^\s@]+@[^\s]+)", re.IGNORECASE
)
ORG_RE = re.compile(
    r"(?:org(?:anization)?|team)\s*:\s*(?P<org>[^\n]+?)\s*(?:\n|$)", re.IGNORECASE
)
LOGIN_RE = re.compile(r"logged in (?:with|via|using)\s+(?P<method>\w+)", re.IGNORECASE)
PLAN_RE = re.compile(r"plan\s*:\s*(?P<plan>\w+)", re.IGNORECASE)

_WINDOW_SLOTS = ("primary", "secondary", "tertiary")


def _as_text(raw: bytes | str) -> str:
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw


def snapshot_json(raw: bytes | str) -> UsageSnapshot:
    """Parse a snapshot already in the normalized JSON shape.

    Args:
        raw: JSON document.

    Returns:
        Parsed snapshot.

    Raises:
        FetchError: PARSE_ERROR if the document does not validate.
    """
    try:
        return UsageSnapshot.model_validate_json(raw)
    except ValidationError as e:
        raise FetchError(
            FetchErrorClass.PARSE_ERROR,
            f"Invalid snapshot JSON: {e.error_count()} validation error(s)",
        ) from e


def percent_left_text(raw: bytes | str) -> UsageSnapshot:
    """Parse human-oriented terminal output such as ``42% left``.

    Each percentage found, in order, fills the next usage window; the text
    between one percentage and the next is searched for a reset
    description. ``used`` values are taken as-is and ``left``/``remaining``
    values are converted to used.

    Args:
        raw: Terminal output (control sequences are stripped).

    Returns:
        Parsed snapshot.

    Raises:
        FetchError: PARSE_ERROR if no percentage is present.
    """
    text = strip_ansi(_as_text(raw))
    matches = list(PERCENT_RE.finditer(text))
    if not matches:
        raise FetchError(
            FetchErrorClass.PARSE_ERROR, "No usage percentage found in output"
        )

    windows: dict[str, UsageWindow] = {}
    for index, (slot, match) in enumerate(zip(_WINDOW_SLOTS, matches, strict=False)):
        value = min(float(match.group("value")), 100.0)
        used = value if match.group("kind").lower() == "used" else 100.0 - value
        end = matches[index + 1].start() if index + 1 < len(matches) else len(text)
        reset = RESET_RE.search(text, match.end(), end)
        windows[slot] = UsageWindow(
            used_percent=used,
            reset_description=reset.group("when") if reset else None,
        )

    identity = _parse_identity(text)
    return UsageSnapshot(**windows, identity=identity)


def _parse_identity(text: str) -> ProviderIdentity | None:
    email = EMAIL_RE.search(text)
    org = ORG_RE.search(text)
    login = LOGIN_RE.search(text)
    plan = PLAN_RE.search(text)
    if not (email or org or login or plan):
        return None
    return ProviderIdentity(
        email=email.group("email") if email else None,
        organization=org.group("org") if org else None,
        login_method=login.group("method").lower() if login else None,
        plan=plan.group("plan") if plan else None,
    )


PARSERS: dict[str, SnapshotParser] = {
    "snapshot_json": snapshot_json,
    "percent_left_text": percent_left_text,
}


def get_parser(name: str) -> SnapshotParser:
    """Look up a parse transform by name.

    Raises:
        KeyError: If no parser has that name.
    """
    if name not in PARSERS:
        msg = f"Unknown parser '{name}'. Available: {', '.join(sorted(PARSERS))}"
        raise KeyError(msg)
    return PARSERS[name]
