"""Browser session import contract and a Firefox cookie importer.

Decrypting Chromium cookie stores is out of scope; Chromium-family
browsers are reported as unavailable by the bundled importer. Other
importers can be plugged in through the BrowserSessionImporter protocol.
"""

import shutil
import sqlite3
import sys
import tempfile
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, ConfigDict

from src.features.fetch.errors import FetchError, FetchErrorClass


logger = structlog.get_logger()


class Browser(str, Enum):
    """Browsers whose sessions can be imported."""

    FIREFOX = "firefox"
    SAFARI = "safari"
    CHROME = "chrome"
    ARC = "arc"
    BRAVE = "brave"
    EDGE = "edge"

    @property
    def uses_encrypted_cookies(self) -> bool:
        """Check if the browser encrypts its cookie store."""
        return self in (Browser.CHROME, Browser.ARC, Browser.BRAVE, Browser.EDGE)

    @classmethod
    def default_priority(cls) -> tuple["Browser", ...]:
        """Browsers in auto-detection order, unencrypted stores first."""
        return (
            cls.FIREFOX,
            cls.SAFARI,
            cls.CHROME,
            cls.ARC,
            cls.BRAVE,
            cls.EDGE,
        )


class Cookie(BaseModel):
    """A browser cookie."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    value: str
    domain: str
    path: str = "/"
    expires: datetime | None = None
    secure: bool = False
    http_only: bool = False

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check if the cookie has expired."""
        if self.expires is None:
            return False
        return self.expires < (now or datetime.now(UTC))

    def matches_domain(self, domain: str) -> bool:
        """Check if the cookie applies to a domain or one of its relatives."""
        cookie_domain = self.domain.lstrip(".").lower()
        domain = domain.lower()
        return (
            domain == cookie_domain
            or domain.endswith(f".{cookie_domain}")
            or cookie_domain.endswith(f".{domain}")
        )


class ImportedCookies(BaseModel):
    """Cookies imported from one browser."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    browser: Browser
    domain: str
    cookies: tuple[Cookie, ...]


@runtime_checkable
class BrowserSessionImporter(Protocol):
    """Imports an authenticated browser session's cookies."""

    def import_cookies(
        self, domain: str, browser_priority: tuple[Browser, ...]
    ) -> ImportedCookies:
        """Import cookies for a domain from the first browser that has them.

        Args:
            domain: Domain whose cookies are wanted.
            browser_priority: Browsers to try, in order.

        Returns:
            Cookies and the browser they came from.

        Raises:
            FetchError: NOT_AVAILABLE if no browser yields cookies.
        """
        ...


def cookies_to_header(
    cookies: ImportedCookies | tuple[Cookie, ...] | list[Cookie],
    domain: str | None = None,
    now: datetime | None = None,
) -> str:
    """Build a Cookie header value.

    Expired cookies and, when a domain is given, cookies for other domains
    are left out.

    Args:
        cookies: Imported cookies or a sequence of cookies.
        domain: Domain the request goes to. Defaults to the import domain.
        now: Reference time for expiry checks.

    Returns:
        Header value such as ``a=1; b=2``.
    """
    if isinstance(cookies, ImportedCookies):
        domain = domain or cookies.domain
        items = cookies.cookies
    else:
        items = tuple(cookies)

    return "; ".join(
        f"{c.name}={c.value}"
        for c in items
        if not c.is_expired(now) and (domain is None or c.matches_domain(domain))
    )


# Newer Firefox versions store expiry in milliseconds
_MILLISECOND_EXPIRY_THRESHOLD = 10**11


def _expiry_to_datetime(expiry: int | None) -> datetime | None:
    if not expiry or expiry <= 0:
        return None
    if expiry > _MILLISECOND_EXPIRY_THRESHOLD:
        expiry //= 1000
    return datetime.fromtimestamp(expiry, UTC)


def find_firefox_profile(profiles_dir: Path) -> Path | None:
    """Find the default Firefox profile directory.

    Prefers ``*.default-release``, then ``*.default``, then any profile.
    """
    if not profiles_dir.is_dir():
        return None

    default_profile: Path | None = None
    any_profile: Path | None = None
    for entry in sorted(profiles_dir.iterdir()):
        if not entry.is_dir():
            continue
        if entry.name.endswith(".default-release"):
            return entry
        if entry.name.endswith(".default"):
            default_profile = default_profile or entry
        else:
            any_profile = any_profile or entry
    return default_profile or any_profile


def default_firefox_profiles_dir() -> Path:
    """Get the platform's Firefox profiles directory."""
    home = Path.home()
    if sys.platform == "darwin":
        return home / "Library/Application Support/Firefox/Profiles"
    return home / ".mozilla/firefox"


class FirefoxCookieImporter:
    """Reads cookies from Firefox's unencrypted cookies.sqlite."""

    def __init__(self, profiles_dir: Path | None = None) -> None:
        """Initialize the importer.

        Args:
            profiles_dir: Firefox profiles directory. Defaults to the
                platform location.
        """
        self._profiles_dir = profiles_dir or default_firefox_profiles_dir()

    def cookie_db_path(self) -> Path | None:
        """Get the cookie database of the default profile, if present."""
        profile = find_firefox_profile(self._profiles_dir)
        if profile is None:
            return None
        path = profile / "cookies.sqlite"
        return path if path.exists() else None

    def import_cookies(
        self, domain: str, browser_priority: tuple[Browser, ...]
    ) -> ImportedCookies:
        """Import cookies for a domain; only Firefox is supported."""
        log = logger.bind(component="browser", domain=domain)
        if Browser.FIREFOX not in browser_priority:
            raise FetchError(
                FetchErrorClass.NOT_AVAILABLE,
                "No supported browser in the requested priority list",
            )

        db_path = self.cookie_db_path()
        if db_path is None:
            log.debug("browser_not_installed", browser=Browser.FIREFOX.value)
            raise FetchError(
                FetchErrorClass.NOT_AVAILABLE, "Firefox cookie store not found"
            )

        cookies = tuple(
            c for c in self._read_cookies(db_path, domain) if c.matches_domain(domain)
        )
        if not cookies:
            raise FetchError(
                FetchErrorClass.NOT_AVAILABLE, f"No browser cookies found for {domain}"
            )

        log.debug("cookies_imported", browser=Browser.FIREFOX.value, count=len(cookies))
        return ImportedCookies(browser=Browser.FIREFOX, domain=domain, cookies=cookies)

    def _read_cookies(self, db_path: Path, domain: str) -> list[Cookie]:
        # Firefox keeps the database locked while running, so read a copy
        with tempfile.TemporaryDirectory() as tmp:
            copy = Path(tmp) / "cookies.sqlite"
            shutil.copyfile(db_path, copy)
            try:
                conn = sqlite3.connect(str(copy))
                try:
                    rows = conn.execute(
                        "SELECT name, value, host, path, expiry, isSecure, isHttpOnly "
                        "FROM moz_cookies WHERE host LIKE ? OR baseDomain = ?",
                        (f"%{domain}", domain),
                    ).fetchall()
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise FetchError(
                    FetchErrorClass.NOT_AVAILABLE,
                    f"Failed to read Firefox cookies: {e}",
                ) from e

        return [
            Cookie(
                name=name,
                value=value,
                domain=host,
                path=path or "/",
                expires=_expiry_to_datetime(expiry),
                secure=bool(secure),
                http_only=bool(http_only),
            )
            for name, value, host, path, expiry, secure, http_only in rows
        ]
