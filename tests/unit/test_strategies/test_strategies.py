"""Unit tests for the concrete fetch strategies."""

import json
import sys
import threading
from datetime import timedelta

import httpx
import pytest

from src.features.fetch.channels import ChannelKind
from src.features.fetch.context import FetchContext
from src.features.fetch.errors import FetchError, FetchErrorClass
from src.features.fetch.metrics import FetchMetrics
from src.features.fetch.retry import RetryPolicy
from src.features.fetch.strategy import FetchStrategy
from src.features.host.browser import Browser, Cookie, ImportedCookies
from src.features.host.credentials import CredentialCache
from src.features.host.http import HttpClient
from src.features.host.process import ProcessRunner
from src.features.pty.models import PtyOptions, PtyResult
from src.features.pty.state_machine import PtySessionState
from src.features.strategies.api import ApiKeyStrategy, TokenApiStrategy
from src.features.strategies.browser import BrowserSessionStrategy
from src.features.strategies.parsers import percent_left_text, snapshot_json
from src.features.strategies.process import LocalProcessStrategy
from src.features.strategies.terminal import TerminalStrategy
from tests.helpers.credentials import FakeStore
from tests.helpers.time import FIXED_NOW, RecordingSleep


USAGE_URL = "https://api.example.com/api/oauth/usage"
SNAPSHOT_BODY = json.dumps({"primary": {"used_percent": 30.0}}).encode()


@pytest.fixture(autouse=True)
def reset_metrics() -> None:
    """Reset metrics singleton between tests."""
    FetchMetrics.reset()


class ScriptedTransport:
    """Returns scripted responses in order and records requests."""

    def __init__(self, responses: list[httpx.Response]) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def _ctx(
    responses: list[httpx.Response] | None = None,
    secrets: dict[tuple[str, str], str] | None = None,
    **kwargs: object,
) -> tuple[FetchContext, ScriptedTransport, FakeStore, RecordingSleep]:
    transport = ScriptedTransport(responses or [])
    store = FakeStore(secrets)
    sleep = RecordingSleep()
    ctx = FetchContext(
        http=HttpClient(transport=httpx.MockTransport(transport)),
        credentials=CredentialCache(store),
        sleep=sleep,
        **kwargs,
    )
    return ctx, transport, store, sleep


class TestTokenApiStrategy:
    """Tests for TokenApiStrategy."""

    def _strategy(self, **kwargs: object) -> TokenApiStrategy:
        return TokenApiStrategy(
            "claude-oauth",
            url=USAGE_URL,
            service="claude",
            parser=snapshot_json,
            **kwargs,
        )

    def test_satisfies_protocol(self) -> None:
        """Test the capability contract and defaults."""
        strategy = self._strategy()

        assert isinstance(strategy, FetchStrategy)
        assert strategy.kind == ChannelKind.REMOTE_API_TOKEN
        assert strategy.priority == ChannelKind.REMOTE_API_TOKEN.default_priority

    def test_unavailable_without_token(self) -> None:
        """Test that a missing token makes the strategy unavailable."""
        ctx, _, _, _ = _ctx()

        assert not self._strategy().is_available(ctx)
        with pytest.raises(FetchError) as exc_info:
            self._strategy().fetch(ctx)
        assert exc_info.value.error_class == FetchErrorClass.NOT_AVAILABLE

    def test_fetch_sends_bearer(self) -> None:
        """Test a successful fetch."""
        ctx, transport, _, _ = _ctx(
            [httpx.Response(200, content=SNAPSHOT_BODY)],
            {("claude", "oauth_token"): "tok-abc"},
        )
        strategy = self._strategy()

        assert strategy.is_available(ctx)
        snapshot = strategy.fetch(ctx)

        assert snapshot.primary is not None
        assert snapshot.primary.used_percent == 30.0
        assert transport.requests[0].headers["authorization"] == "Bearer tok-abc"

    def test_rejected_token_evicted(self) -> None:
        """Test that a 401 invalidates the cached token."""
        ctx, _, store, sleep = _ctx(
            [httpx.Response(401)], {("claude", "oauth_token"): "expired"}
        )
        strategy = self._strategy()
        strategy.is_available(ctx)

        with pytest.raises(FetchError) as exc_info:
            strategy.fetch(ctx)

        assert exc_info.value.error_class == FetchErrorClass.AUTHENTICATION_FAILED
        assert sleep.calls == []
        assert ctx.credentials is not None
        ctx.credentials.get_cached("claude", "oauth_token")
        assert len(store.lookups) == 2

    def test_rate_limit_waits_retry_after(self) -> None:
        """Test that a 429 with retry-after=3 waits 3s, not the 1s backoff."""
        ctx, transport, _, sleep = _ctx(
            [
                httpx.Response(429, headers={"Retry-After": "3"}),
                httpx.Response(200, content=SNAPSHOT_BODY),
            ],
            {("claude", "oauth_token"): "tok"},
        )
        strategy = self._strategy(
            retry_policy=RetryPolicy(max_attempts=3, base_delay_seconds=1.0)
        )

        snapshot = strategy.fetch(ctx)

        assert snapshot.primary is not None
        assert sleep.calls == [3.0]
        assert len(transport.requests) == 2

    def test_server_error_not_retried(self) -> None:
        """Test that a 5xx response fails without retrying."""
        ctx, transport, _, sleep = _ctx(
            [httpx.Response(500)], {("claude", "oauth_token"): "tok"}
        )

        with pytest.raises(FetchError) as exc_info:
            self._strategy().fetch(ctx)

        assert exc_info.value.error_class == FetchErrorClass.INVALID_RESPONSE
        assert sleep.calls == []
        assert len(transport.requests) == 1


class TestApiKeyStrategy:
    """Tests for ApiKeyStrategy."""

    def test_header_template(self) -> None:
        """Test that the key is substituted into custom headers."""
        ctx, transport, _, _ = _ctx(
            [httpx.Response(200, content=SNAPSHOT_BODY)],
            {("zai", "api_key"): "key-123"},
        )
        strategy = ApiKeyStrategy(
            "zai-key",
            url=USAGE_URL,
            service="zai",
            parser=snapshot_json,
            headers={"x-api-key": "{secret}", "x-client": "usage-fetch"},
        )

        strategy.fetch(ctx)

        request = transport.requests[0]
        assert request.headers["x-api-key"] == "key-123"
        assert request.headers["x-client"] == "usage-fetch"
        assert "authorization" not in request.headers
        assert strategy.kind == ChannelKind.REMOTE_API_KEY

    def test_bearer_by_default(self) -> None:
        """Test that the key is sent as a bearer token by default."""
        ctx, transport, _, _ = _ctx(
            [httpx.Response(200, content=SNAPSHOT_BODY)],
            {("zai", "api_key"): "key-123"},
        )
        strategy = ApiKeyStrategy(
            "zai-key", url=USAGE_URL, service="zai", parser=snapshot_json
        )

        strategy.fetch(ctx)

        assert transport.requests[0].headers["authorization"] == "Bearer key-123"

    def test_header_template_with_other_braces(self) -> None:
        """Test that braces other than the placeholder are sent verbatim."""
        ctx, transport, _, _ = _ctx(
            [httpx.Response(200, content=SNAPSHOT_BODY)],
            {("zai", "api_key"): "key-123"},
        )
        strategy = ApiKeyStrategy(
            "zai-key",
            url=USAGE_URL,
            service="zai",
            parser=snapshot_json,
            headers={"x-api-key": "{secret} {x}", "x-meta": "{secret};{0}{{v}}"},
        )

        snapshot = strategy.fetch(ctx)

        headers = transport.requests[0].headers
        assert snapshot.primary is not None
        assert headers["x-api-key"] == "key-123 {x}"
        assert headers["x-meta"] == "key-123;{0}{{v}}"


class FakeImporter:
    """Browser importer returning fixed cookies."""

    def __init__(self, cookies: tuple[Cookie, ...]) -> None:
        self.cookies = cookies
        self.calls: list[tuple[str, tuple[Browser, ...]]] = []

    def import_cookies(
        self, domain: str, browser_priority: tuple[Browser, ...]
    ) -> ImportedCookies:
        self.calls.append((domain, browser_priority))
        return ImportedCookies(browser=Browser.FIREFOX, domain=domain, cookies=self.cookies)


class TestBrowserSessionStrategy:
    """Tests for BrowserSessionStrategy."""

    def _strategy(self) -> BrowserSessionStrategy:
        return BrowserSessionStrategy(
            "claude-web",
            url="https://claude.ai/api/organizations/o/usage",
            domain="claude.ai",
            parser=snapshot_json,
            browsers=(Browser.FIREFOX, Browser.SAFARI),
        )

    def test_fetch_with_cookies(self) -> None:
        """Test that imported cookies authenticate the request."""
        importer = FakeImporter(
            (Cookie(name="sessionKey", value="sk-ant-sid", domain=".claude.ai"),)
        )
        ctx, transport, _, _ = _ctx(
            [httpx.Response(200, content=SNAPSHOT_BODY)], browser=importer
        )
        strategy = self._strategy()

        assert strategy.is_available(ctx)
        strategy.fetch(ctx)

        assert transport.requests[0].headers["cookie"] == "sessionKey=sk-ant-sid"
        assert importer.calls == [("claude.ai", (Browser.FIREFOX, Browser.SAFARI))]

    def test_only_expired_cookies(self) -> None:
        """Test that a session of expired cookies is unavailable."""
        importer = FakeImporter(
            (
                Cookie(
                    name="sessionKey",
                    value="old",
                    domain="claude.ai",
                    expires=FIXED_NOW - timedelta(days=1),
                ),
            )
        )
        ctx, transport, _, _ = _ctx(browser=importer)

        with pytest.raises(FetchError) as exc_info:
            self._strategy().fetch(ctx)

        assert exc_info.value.error_class == FetchErrorClass.NOT_AVAILABLE
        assert transport.requests == []

    def test_unavailable_without_importer(self) -> None:
        """Test the probe without a browser importer."""
        ctx, _, _, _ = _ctx()

        assert not self._strategy().is_available(ctx)


class TestLocalProcessStrategy:
    """Tests for LocalProcessStrategy."""

    def test_parses_stdout(self) -> None:
        """Test a successful machine-readable run."""
        strategy = LocalProcessStrategy(
            "codex-rpc",
            command=sys.executable,
            args=("-c", f"print({SNAPSHOT_BODY.decode()!r})"),
            parser=snapshot_json,
            timeout_seconds=10,
        )
        ctx = FetchContext(process=ProcessRunner())

        assert strategy.is_available(ctx)
        snapshot = strategy.fetch(ctx)

        assert snapshot.primary is not None
        assert snapshot.primary.used_percent == 30.0
        assert strategy.kind == ChannelKind.LOCAL_PROCESS_PROTOCOL

    def test_failed_process(self) -> None:
        """Test that a non-zero exit is a process failure."""
        strategy = LocalProcessStrategy(
            "codex-rpc",
            command=sys.executable,
            args=("-c", "import sys; sys.exit(1)"),
            parser=snapshot_json,
            timeout_seconds=10,
        )

        with pytest.raises(FetchError) as exc_info:
            strategy.fetch(FetchContext(process=ProcessRunner()))

        assert exc_info.value.error_class == FetchErrorClass.PROCESS_FAILED

    def test_unavailable_when_missing(self) -> None:
        """Test the probe for a missing command or runner."""
        missing = LocalProcessStrategy(
            "x", command="definitely-not-a-real-binary-xyz", parser=snapshot_json
        )
        present = LocalProcessStrategy("y", command=sys.executable, parser=snapshot_json)

        assert not missing.is_available(FetchContext(process=ProcessRunner()))
        assert not present.is_available(FetchContext())


class FakePtyRunner:
    """Terminal runner returning scripted results."""

    def __init__(self, results: list[PtyResult]) -> None:
        self.results = list(results)
        self.calls: list[tuple[str, str]] = []
        self.cancel_events: list[threading.Event | None] = []

    def run(
        self,
        binary: str,
        input_text: str,
        options: PtyOptions,
        cancel_event: threading.Event | None = None,
    ) -> PtyResult:
        self.calls.append((binary, input_text))
        self.cancel_events.append(cancel_event)
        return self.results.pop(0)


def _pty_result(state: PtySessionState, text: str = "") -> PtyResult:
    return PtyResult(state=state, text=text, raw=text.encode(), duration_ms=10.0)


class TestTerminalStrategy:
    """Tests for TerminalStrategy."""

    def _strategy(self, **kwargs: object) -> TerminalStrategy:
        return TerminalStrategy(
            "claude-cli",
            binary=sys.executable,
            input_text="/usage\n",
            options=PtyOptions(stop_patterns=("% left",)),
            parser=percent_left_text,
            **kwargs,
        )

    def test_parses_matched_output(self) -> None:
        """Test the happy path."""
        runner = FakePtyRunner(
            [_pty_result(PtySessionState.MATCHED_STOP, "Session: 75% left")]
        )
        ctx = FetchContext(pty=runner)
        strategy = self._strategy()

        assert strategy.is_available(ctx)
        snapshot = strategy.fetch(ctx)

        assert snapshot.primary is not None
        assert snapshot.primary.used_percent == 25.0
        assert runner.calls == [(sys.executable, "/usage\n")]
        assert strategy.kind == ChannelKind.INTERACTIVE_TERMINAL

    def test_timeout_not_retried_by_default(self) -> None:
        """Test that a timed-out session fails after one attempt."""
        runner = FakePtyRunner([_pty_result(PtySessionState.IDLE_TIMED_OUT, "Sess")])

        with pytest.raises(FetchError) as exc_info:
            self._strategy().fetch(FetchContext(pty=runner))

        assert exc_info.value.error_class == FetchErrorClass.TERMINAL_TIMEOUT
        assert len(runner.calls) == 1

    def test_timeout_retried_with_policy(self) -> None:
        """Test that a configured retry policy re-runs the session."""
        sleep = RecordingSleep()
        runner = FakePtyRunner(
            [
                _pty_result(PtySessionState.TIMED_OUT),
                _pty_result(PtySessionState.MATCHED_STOP, "40% left"),
            ]
        )
        strategy = self._strategy(
            retry_policy=RetryPolicy(max_attempts=2, base_delay_seconds=0.5)
        )

        snapshot = strategy.fetch(FetchContext(pty=runner, sleep=sleep))

        assert snapshot.primary is not None
        assert sleep.calls == [0.5]
        assert len(runner.calls) == 2

    def test_process_exit_is_incomplete(self) -> None:
        """Test that an early exit is a protocol failure."""
        runner = FakePtyRunner(
            [_pty_result(PtySessionState.PROCESS_EXITED, "Please run /login")]
        )

        with pytest.raises(FetchError) as exc_info:
            self._strategy().fetch(FetchContext(pty=runner))

        assert exc_info.value.error_class == FetchErrorClass.INCOMPLETE_OUTPUT

    def test_unavailable_without_runner(self) -> None:
        """Test the probe without a terminal runner."""
        assert not self._strategy().is_available(FetchContext())

    def test_cancel_event_reaches_runner(self) -> None:
        """Test that the attempt's cancel event is handed to the session."""
        runner = FakePtyRunner(
            [_pty_result(PtySessionState.MATCHED_STOP, "Session: 75% left")]
        )
        ctx = FetchContext(pty=runner).for_attempt()

        self._strategy().fetch(ctx)

        assert ctx.cancel_event is not None
        assert runner.cancel_events == [ctx.cancel_event]

    def test_cancellation_stops_retries(self) -> None:
        """Test that a cancelled attempt does not start another session."""
        runner = FakePtyRunner(
            [
                _pty_result(PtySessionState.TIMED_OUT),
                _pty_result(PtySessionState.MATCHED_STOP, "40% left"),
            ]
        )
        ctx = FetchContext(pty=runner).for_attempt()
        assert ctx.cancel_event is not None
        ctx.sleep = lambda _seconds: ctx.cancel_event.set()
        strategy = self._strategy(retry_policy=RetryPolicy(max_attempts=3))

        with pytest.raises(FetchError) as exc_info:
            strategy.fetch(ctx)

        assert exc_info.value.error_class == FetchErrorClass.CANCELLED
        assert len(runner.calls) == 1
