"""Unit tests for the provider configuration loader."""

import json
from pathlib import Path

import pytest

from src.features.config.loader import (
    ConfigValidationError,
    ProviderConfigLoader,
    build_registry,
    build_strategy,
)
from src.features.config.schemas.providers import (
    ProvidersConfig,
    TerminalStrategyConfig,
)
from src.features.fetch.channels import ChannelKind
from src.features.fetch.service import UnknownProviderError
from src.features.strategies.api import ApiKeyStrategy, TokenApiStrategy
from src.features.strategies.browser import BrowserSessionStrategy
from src.features.strategies.process import LocalProcessStrategy
from src.features.strategies.terminal import TerminalStrategy


VALID_YAML = """\
version: "1.0"
allowed_domains:
  - API.Example.com
  - .claude.ai
providers:
  - id: claude
    name: Claude
    strategies:
      - id: claude-oauth
        kind: remote_api_token
        url: https://api.example.com/api/oauth/usage
        service: claude
        parser: snapshot_json
      - id: claude-web
        kind: browser_session
        url: https://claude.ai/api/usage
        domain: claude.ai
        browsers: [firefox]
        parser: snapshot_json
      - id: claude-cli
        kind: interactive_terminal
        binary: claude
        input: "/usage\\n"
        stop_patterns: ["% used"]
        idle_timeout_seconds: 5
        send_rules:
          - pattern: "Do you trust"
            response: "\\r"
        parser: percent_left_text
        priority: 90
  - id: zai
    name: z.ai
    strategies:
      - id: zai-key
        kind: remote_api_key
        url: https://api.example.com/quota
        service: zai
        headers:
          x-api-key: "{secret}"
        parser: snapshot_json
        retry:
          max_attempts: 2
          base_delay_seconds: 0.5
  - id: codex
    name: Codex
    strategies:
      - id: codex-rpc
        kind: local_process_protocol
        command: codex
        args: [usage, --json]
        parser: snapshot_json
      - id: codex-cli
        kind: interactive_terminal
        binary: codex
        stop_patterns: ["% left"]
        parser: percent_left_text
        enabled: false
"""


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "providers.yaml"
    path.write_text(content, encoding="utf-8")
    return path


def _errors_for(tmp_path: Path, content: str) -> list[dict[str, str]]:
    loader = ProviderConfigLoader()
    with pytest.raises(ConfigValidationError) as exc_info:
        loader.load(_write(tmp_path, content))
    assert exc_info.value.errors == loader.validation_errors
    return exc_info.value.errors


class TestProviderConfigLoader:
    """Tests for ProviderConfigLoader."""

    def test_load_valid(self, tmp_path: Path) -> None:
        """Test loading a valid providers file."""
        loader = ProviderConfigLoader()

        config = loader.load(_write(tmp_path, VALID_YAML))

        assert [p.id for p in config.providers] == ["claude", "zai", "codex"]
        assert config.allowed_domains == ["api.example.com", "claude.ai"]
        assert loader.validation_errors == []
        assert loader.checksum is not None
        assert len(loader.checksum) == 64

    def test_terminal_defaults(self, tmp_path: Path) -> None:
        """Test that terminal strategies default to a single attempt."""
        config = ProviderConfigLoader().load(_write(tmp_path, VALID_YAML))
        terminal = config.providers[0].strategies[2]

        assert isinstance(terminal, TerminalStrategyConfig)
        assert terminal.retry.max_attempts == 1
        assert terminal.timeout_seconds == 30.0
        assert terminal.settle_after_stop_seconds == 0.0
        assert terminal.send_rules[0].response == "\r"

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test that a missing file is reported, not raised raw."""
        loader = ProviderConfigLoader()

        with pytest.raises(ConfigValidationError) as exc_info:
            loader.load(tmp_path / "nope.yaml")

        assert exc_info.value.errors[0]["type"] == "file_not_found"
        assert exc_info.value.file_path.endswith("nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Test that malformed YAML is reported."""
        errors = _errors_for(tmp_path, "providers: [unclosed\n")

        assert errors[0]["type"] == "yaml_parse_error"

    def test_non_utf8_file(self, tmp_path: Path) -> None:
        """Test that undecodable bytes are reported as an encoding error."""
        path = tmp_path / "providers.yaml"
        path.write_bytes(b"providers:\n  - id: \xff\xfe\x00bad\n")
        loader = ProviderConfigLoader()

        with pytest.raises(ConfigValidationError) as exc_info:
            loader.load(path)

        assert exc_info.value.errors[0]["type"] == "encoding_error"
        assert "UTF-8" in exc_info.value.errors[0]["msg"]

    def test_directory_instead_of_file(self, tmp_path: Path) -> None:
        """Test that an unreadable path is reported, not raised raw."""
        loader = ProviderConfigLoader()

        with pytest.raises(ConfigValidationError) as exc_info:
            loader.load(tmp_path)

        assert exc_info.value.errors[0]["type"] == "file_unreadable"

    def test_header_template_with_extra_braces(self, tmp_path: Path) -> None:
        """Test that templates may carry braces besides the placeholder."""
        path = _write(
            tmp_path,
            """\
providers:
  - id: p
    name: P
    strategies:
      - id: s
        kind: remote_api_key
        url: https://api.example.com/quota
        service: p
        headers:
          x-api-key: "{secret} {x}"
          x-meta: "{0};{secret}"
        parser: snapshot_json
""",
        )

        config = ProviderConfigLoader().load(path)

        strategy = config.providers[0].strategies[0]
        assert strategy.headers == {"x-api-key": "{secret} {x}", "x-meta": "{0};{secret}"}

    def test_empty_file(self, tmp_path: Path) -> None:
        """Test that an empty file is missing its providers list."""
        errors = _errors_for(tmp_path, "")

        assert errors == [
            {"loc": "providers", "msg": "Field required", "type": "missing"}
        ]

    def test_unknown_kind(self, tmp_path: Path) -> None:
        """Test that an unknown strategy kind is rejected."""
        errors = _errors_for(
            tmp_path,
            """\
providers:
  - id: p
    name: P
    strategies:
      - id: s
        kind: carrier_pigeon
        parser: snapshot_json
""",
        )

        assert errors[0]["type"] == "union_tag_invalid"

    def test_unknown_parser(self, tmp_path: Path) -> None:
        """Test that an unknown parser name is rejected."""
        errors = _errors_for(
            tmp_path,
            """\
providers:
  - id: p
    name: P
    strategies:
      - id: s
        kind: local_process_protocol
        command: tool
        parser: tea_leaves
""",
        )

        assert "Unknown parser 'tea_leaves'" in errors[0]["msg"]
        assert errors[0]["loc"].endswith("parser")

    def test_literal_secret_in_header(self, tmp_path: Path) -> None:
        """Test that header templates must use the placeholder."""
        errors = _errors_for(
            tmp_path,
            """\
providers:
  - id: p
    name: P
    strategies:
      - id: s
        kind: remote_api_key
        url: https://api.example.com/quota
        service: p
        headers:
          x-api-key: sk-live-123
        parser: snapshot_json
""",
        )

        assert "{secret}" in errors[0]["msg"]
        assert errors[0]["loc"].endswith("headers")

    def test_duplicate_ids(self, tmp_path: Path) -> None:
        """Test that duplicate provider and strategy ids are rejected."""
        errors = _errors_for(
            tmp_path,
            """\
providers:
  - id: p
    name: P
    strategies:
      - {id: s, kind: local_process_protocol, command: a, parser: snapshot_json}
      - {id: s, kind: local_process_protocol, command: b, parser: snapshot_json}
  - id: p
    name: P again
""",
        )

        messages = " ".join(e["msg"] for e in errors)
        assert "Duplicate strategy IDs: s" in messages

    def test_invalid_url_and_id(self, tmp_path: Path) -> None:
        """Test that every schema error is collected."""
        errors = _errors_for(
            tmp_path,
            """\
providers:
  - id: Bad ID
    name: P
    strategies:
      - id: s
        kind: remote_api_token
        url: ftp://example.com
        service: p
        parser: snapshot_json
""",
        )

        locs = {e["loc"] for e in errors}
        assert "providers.0.id" in locs
        assert any(loc.endswith("url") for loc in locs)

    def test_validation_summary_json(self, tmp_path: Path) -> None:
        """Test that the summary is stable JSON."""
        loader = ProviderConfigLoader()
        with pytest.raises(ConfigValidationError):
            loader.load(_write(tmp_path, ""))

        summary = json.loads(loader.get_validation_summary_json())

        assert summary["validation_error_count"] == 1
        assert summary["file_sha256"] == loader.checksum


class TestBuildRegistry:
    """Tests for building strategies from configuration."""

    @pytest.fixture
    def config(self, tmp_path: Path) -> ProvidersConfig:
        """Load the valid providers file."""
        return ProviderConfigLoader().load(_write(tmp_path, VALID_YAML))

    def test_strategy_types(self, config: ProvidersConfig) -> None:
        """Test that each kind maps to its strategy class."""
        built = [build_strategy(s) for p in config.providers for s in p.strategies]

        assert [type(s) for s in built] == [
            TokenApiStrategy,
            BrowserSessionStrategy,
            TerminalStrategy,
            ApiKeyStrategy,
            LocalProcessStrategy,
            TerminalStrategy,
        ]
        assert [s.kind for s in built[:3]] == [
            ChannelKind.REMOTE_API_TOKEN,
            ChannelKind.BROWSER_SESSION,
            ChannelKind.INTERACTIVE_TERMINAL,
        ]

    def test_priority_override(self, config: ProvidersConfig) -> None:
        """Test that configured priorities override kind defaults."""
        registry = build_registry(config)
        strategies = registry.strategies_for("claude")

        assert strategies[2].priority == 90
        assert strategies[0].priority == ChannelKind.REMOTE_API_TOKEN.default_priority

    def test_terminal_options(self, config: ProvidersConfig) -> None:
        """Test that terminal options carry through."""
        terminal = build_strategy(config.providers[0].strategies[2])

        assert isinstance(terminal, TerminalStrategy)
        assert terminal.options.stop_patterns == ("% used",)
        assert terminal.options.idle_timeout_seconds == 5.0
        assert terminal.options.send_rules[0].pattern == "Do you trust"

    def test_disabled_strategies_left_out(self, config: ProvidersConfig) -> None:
        """Test that disabled strategies are not registered."""
        registry = build_registry(config)

        assert [s.strategy_id for s in registry.strategies_for("codex")] == [
            "codex-rpc"
        ]

    def test_all_disabled_provider_resolves(self, tmp_path: Path) -> None:
        """Test that a provider with nothing enabled is still known."""
        config = ProviderConfigLoader().load(
            _write(
                tmp_path,
                """\
providers:
  - id: quiet
    name: Quiet
    strategies:
      - id: s
        kind: local_process_protocol
        command: tool
        parser: snapshot_json
        enabled: false
""",
            )
        )
        registry = build_registry(config)

        assert "quiet" in registry
        assert registry.strategies_for("quiet") == []
        with pytest.raises(UnknownProviderError):
            registry.strategies_for("loud")
