"""Unit tests for error classification and channel restrictions."""

import pytest

from src.features.fetch.channels import ChannelKind, SourceMode
from src.features.fetch.errors import (
    CATEGORY_HINTS,
    ErrorCategory,
    ErrorRecord,
    FetchError,
    FetchErrorClass,
)


class TestErrorCategories:
    """Tests for the error taxonomy."""

    def test_every_class_has_a_category(self) -> None:
        """Test that the category mapping is total."""
        for error_class in FetchErrorClass:
            assert isinstance(error_class.category, ErrorCategory)

    @pytest.mark.parametrize(
        ("error_class", "category"),
        [
            (FetchErrorClass.AUTHENTICATION_FAILED, ErrorCategory.AUTHENTICATION),
            (FetchErrorClass.RATE_LIMITED, ErrorCategory.TRANSIENT),
            (FetchErrorClass.TERMINAL_TIMEOUT, ErrorCategory.TRANSIENT),
            (FetchErrorClass.INCOMPLETE_OUTPUT, ErrorCategory.PROTOCOL),
            (FetchErrorClass.PARSE_ERROR, ErrorCategory.PROTOCOL),
            (FetchErrorClass.NOT_AVAILABLE, ErrorCategory.UNAVAILABLE),
        ],
    )
    def test_selected_mappings(
        self, error_class: FetchErrorClass, category: ErrorCategory
    ) -> None:
        """Test representative class to category mappings."""
        assert FetchError(error_class, "x").category == category

    def test_is_transient(self) -> None:
        """Test the transient shortcut."""
        assert FetchError(FetchErrorClass.CONNECTION_ERROR, "x").is_transient
        assert not FetchError(FetchErrorClass.PARSE_ERROR, "x").is_transient

    def test_to_dict(self) -> None:
        """Test error serialization for logs."""
        error = FetchError(
            FetchErrorClass.RATE_LIMITED, "slow", status_code=429, retry_after=3
        )

        assert error.to_dict() == {
            "error_class": "RATE_LIMITED",
            "category": "TRANSIENT",
            "message": "slow",
            "status_code": 429,
            "retry_after": 3,
        }


class TestErrorRecord:
    """Tests for the serializable error record."""

    def test_from_exception_uses_category_hint(self) -> None:
        """Test that the category hint fills in when none is given."""
        error = FetchError(FetchErrorClass.AUTHENTICATION_FAILED, "401", status_code=401)

        record = ErrorRecord.from_exception(error, strategy_id="claude-oauth")

        assert record.strategy_id == "claude-oauth"
        assert record.status_code == 401
        assert record.hint == CATEGORY_HINTS[ErrorCategory.AUTHENTICATION]

    def test_explicit_hint_wins(self) -> None:
        """Test that an error's own hint overrides the default."""
        error = FetchError(FetchErrorClass.PARSE_ERROR, "bad", hint="Upgrade the CLI")

        assert ErrorRecord.from_exception(error).hint == "Upgrade the CLI"


class TestSourceMode:
    """Tests for channel restrictions."""

    def test_auto_allows_everything(self) -> None:
        """Test that auto mode permits every kind."""
        assert all(SourceMode.AUTO.allows(kind) for kind in ChannelKind)

    @pytest.mark.parametrize(
        ("mode", "allowed"),
        [
            (
                SourceMode.CLI,
                {ChannelKind.LOCAL_PROCESS_PROTOCOL, ChannelKind.INTERACTIVE_TERMINAL},
            ),
            (SourceMode.OAUTH, {ChannelKind.REMOTE_API_TOKEN}),
            (SourceMode.API_KEY, {ChannelKind.REMOTE_API_KEY}),
            (SourceMode.WEB, {ChannelKind.BROWSER_SESSION}),
        ],
    )
    def test_restricted_modes(
        self, mode: SourceMode, allowed: set[ChannelKind]
    ) -> None:
        """Test that restricted modes permit only their kinds."""
        assert {kind for kind in ChannelKind if mode.allows(kind)} == allowed

    def test_display_names_and_priorities(self) -> None:
        """Test channel kind metadata."""
        assert ChannelKind.REMOTE_API_KEY.display_name == "API Key"
        assert (
            ChannelKind.REMOTE_API_TOKEN.default_priority
            > ChannelKind.BROWSER_SESSION.default_priority
        )
