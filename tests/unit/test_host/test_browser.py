"""Unit tests for browser cookie handling and the Firefox importer."""

import sqlite3
from datetime import timedelta
from pathlib import Path

import pytest

from src.features.fetch.errors import FetchError, FetchErrorClass
from src.features.host.browser import (
    Browser,
    Cookie,
    FirefoxCookieImporter,
    ImportedCookies,
    cookies_to_header,
    find_firefox_profile,
)
from tests.helpers.time import FIXED_NOW


def _write_cookie_db(path: Path, rows: list[tuple[object, ...]]) -> None:
    conn = sqlite3.connect(str(path))
    try:
        conn.execute(
            "CREATE TABLE moz_cookies ("
            "id INTEGER PRIMARY KEY, baseDomain TEXT, name TEXT, value TEXT, "
            "host TEXT, path TEXT, expiry INTEGER, isSecure INTEGER, "
            "isHttpOnly INTEGER)"
        )
        conn.executemany(
            "INSERT INTO moz_cookies "
            "(baseDomain, name, value, host, path, expiry, isSecure, isHttpOnly) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            rows,
        )
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def profiles_dir(tmp_path: Path) -> Path:
    """Create a Firefox profiles directory with a cookie database."""
    profile = tmp_path / "abcd1234.default-release"
    profile.mkdir()
    (tmp_path / "zzzz.other").mkdir()
    future = int((FIXED_NOW + timedelta(days=3650)).timestamp())
    _write_cookie_db(
        profile / "cookies.sqlite",
        [
            ("claude.ai", "sessionKey", "sk-ant-sid", ".claude.ai", "/", future, 1, 1),
            ("claude.ai", "lastActiveOrg", "org-1", "claude.ai", "/", future * 1000, 0, 0),
            ("example.com", "other", "nope", ".example.com", "/", future, 0, 0),
        ],
    )
    return tmp_path


class TestCookie:
    """Tests for Cookie helpers."""

    def test_expiry(self) -> None:
        """Test expiry against a reference time."""
        expired = Cookie(
            name="a", value="1", domain="x.com", expires=FIXED_NOW - timedelta(seconds=1)
        )
        session = Cookie(name="b", value="2", domain="x.com")

        assert expired.is_expired(FIXED_NOW)
        assert not session.is_expired(FIXED_NOW)

    @pytest.mark.parametrize(
        ("cookie_domain", "request_domain", "expected"),
        [
            (".claude.ai", "claude.ai", True),
            ("claude.ai", "api.claude.ai", True),
            (".claude.ai", "CLAUDE.AI", True),
            ("claude.ai", "notclaude.ai", False),
            ("example.com", "claude.ai", False),
        ],
    )
    def test_domain_matching(
        self, cookie_domain: str, request_domain: str, expected: bool
    ) -> None:
        """Test domain matching rules."""
        cookie = Cookie(name="a", value="1", domain=cookie_domain)

        assert cookie.matches_domain(request_domain) is expected


class TestCookiesToHeader:
    """Tests for cookies_to_header."""

    def test_joins_valid_cookies(self) -> None:
        """Test header formatting with expired and foreign cookies dropped."""
        imported = ImportedCookies(
            browser=Browser.FIREFOX,
            domain="claude.ai",
            cookies=(
                Cookie(name="sessionKey", value="abc", domain=".claude.ai"),
                Cookie(name="org", value="o1", domain="claude.ai"),
                Cookie(
                    name="stale",
                    value="x",
                    domain="claude.ai",
                    expires=FIXED_NOW - timedelta(days=1),
                ),
                Cookie(name="foreign", value="y", domain="example.com"),
            ),
        )

        assert cookies_to_header(imported, now=FIXED_NOW) == "sessionKey=abc; org=o1"

    def test_plain_sequence_without_domain(self) -> None:
        """Test that a bare list is not domain filtered."""
        cookies = [
            Cookie(name="a", value="1", domain="one.com"),
            Cookie(name="b", value="2", domain="two.com"),
        ]

        assert cookies_to_header(cookies, now=FIXED_NOW) == "a=1; b=2"

    def test_empty(self) -> None:
        """Test that no cookies yields an empty header."""
        assert cookies_to_header([], now=FIXED_NOW) == ""


class TestBrowser:
    """Tests for the Browser enum."""

    def test_default_priority_covers_all(self) -> None:
        """Test that every browser appears once in the default order."""
        order = Browser.default_priority()

        assert set(order) == set(Browser)
        assert order[0] == Browser.FIREFOX

    def test_encrypted_stores(self) -> None:
        """Test which browsers encrypt cookies."""
        assert Browser.CHROME.uses_encrypted_cookies
        assert not Browser.FIREFOX.uses_encrypted_cookies


class TestFirefoxCookieImporter:
    """Tests for FirefoxCookieImporter."""

    def test_finds_default_release_profile(self, profiles_dir: Path) -> None:
        """Test profile discovery."""
        profile = find_firefox_profile(profiles_dir)

        assert profile is not None
        assert profile.name == "abcd1234.default-release"

    def test_missing_profiles_dir(self, tmp_path: Path) -> None:
        """Test discovery when Firefox is not installed."""
        assert find_firefox_profile(tmp_path / "missing") is None

    def test_imports_domain_cookies(self, profiles_dir: Path) -> None:
        """Test reading cookies for one domain."""
        importer = FirefoxCookieImporter(profiles_dir)

        imported = importer.import_cookies("claude.ai", Browser.default_priority())

        assert imported.browser == Browser.FIREFOX
        assert {c.name for c in imported.cookies} == {"sessionKey", "lastActiveOrg"}
        session = next(c for c in imported.cookies if c.name == "sessionKey")
        assert session.secure
        assert session.http_only

    def test_millisecond_expiry_normalized(self, profiles_dir: Path) -> None:
        """Test that millisecond expiries become the same date as seconds."""
        imported = FirefoxCookieImporter(profiles_dir).import_cookies(
            "claude.ai", (Browser.FIREFOX,)
        )

        expiries = {c.name: c.expires for c in imported.cookies}
        assert expiries["sessionKey"] == expiries["lastActiveOrg"]

    def test_no_cookies_for_domain(self, profiles_dir: Path) -> None:
        """Test that a domain without cookies is unavailable."""
        importer = FirefoxCookieImporter(profiles_dir)

        with pytest.raises(FetchError) as exc_info:
            importer.import_cookies("chatgpt.com", (Browser.FIREFOX,))

        assert exc_info.value.error_class == FetchErrorClass.NOT_AVAILABLE

    def test_firefox_not_requested(self, profiles_dir: Path) -> None:
        """Test that a priority list without Firefox is unavailable."""
        importer = FirefoxCookieImporter(profiles_dir)

        with pytest.raises(FetchError) as exc_info:
            importer.import_cookies("claude.ai", (Browser.CHROME,))

        assert exc_info.value.error_class == FetchErrorClass.NOT_AVAILABLE

    def test_no_profile(self, tmp_path: Path) -> None:
        """Test that a missing cookie store is unavailable."""
        importer = FirefoxCookieImporter(tmp_path)

        with pytest.raises(FetchError) as exc_info:
            importer.import_cookies("claude.ai", (Browser.FIREFOX,))

        assert exc_info.value.error_class == FetchErrorClass.NOT_AVAILABLE

    def test_corrupt_database(self, tmp_path: Path) -> None:
        """Test that an unreadable database is unavailable."""
        profile = tmp_path / "x.default"
        profile.mkdir()
        (profile / "cookies.sqlite").write_bytes(b"not a database")

        with pytest.raises(FetchError) as exc_info:
            FirefoxCookieImporter(tmp_path).import_cookies(
                "claude.ai", (Browser.FIREFOX,)
            )

        assert exc_info.value.error_class == FetchErrorClass.NOT_AVAILABLE
