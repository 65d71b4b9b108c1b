"""Provider configuration loader and strategy registry builder."""

import hashlib
import json
import time
from pathlib import Path

import structlog
import yaml
from pydantic import ValidationError

from src.features.config.schemas.providers import (
    ApiKeyStrategyConfig,
    BrowserSessionStrategyConfig,
    LocalProcessStrategyConfig,
    ProvidersConfig,
    StrategyConfig,
    TerminalStrategyConfig,
    TokenApiStrategyConfig,
)
from src.features.fetch.service import StrategyRegistry
from src.features.fetch.strategy import FetchStrategy
from src.features.pty.models import PtyOptions
from src.features.strategies.api import ApiKeyStrategy, TokenApiStrategy
from src.features.strategies.browser import BrowserSessionStrategy
from src.features.strategies.parsers import get_parser
from src.features.strategies.process import LocalProcessStrategy
from src.features.strategies.terminal import TerminalStrategy


logger = structlog.get_logger()


class ConfigValidationError(Exception):
    """Raised when configuration loading or validation fails."""

    def __init__(self, errors: list[dict[str, str]], file_path: str) -> None:
        """Initialize the error.

        Args:
            errors: List of validation error details.
            file_path: Path to the file that failed validation.
        """
        self.errors = errors
        self.file_path = file_path
        super().__init__(f"Validation failed for {file_path}: {len(errors)} errors")


def build_strategy(config: StrategyConfig) -> FetchStrategy:
    """Instantiate the strategy described by a configuration entry.

    Args:
        config: Validated strategy configuration.

    Returns:
        Strategy instance.
    """
    parser = get_parser(config.parser)

    if isinstance(config, TokenApiStrategyConfig):
        return TokenApiStrategy(
            config.id,
            url=config.url,
            service=config.service,
            account=config.account,
            parser=parser,
            priority=config.priority,
            retry_policy=config.retry,
        )
    if isinstance(config, ApiKeyStrategyConfig):
        return ApiKeyStrategy(
            config.id,
            url=config.url,
            service=config.service,
            account=config.account,
            headers=config.headers,
            parser=parser,
            priority=config.priority,
            retry_policy=config.retry,
        )
    if isinstance(config, BrowserSessionStrategyConfig):
        return BrowserSessionStrategy(
            config.id,
            url=config.url,
            domain=config.domain,
            browsers=tuple(config.browsers) if config.browsers else None,
            parser=parser,
            priority=config.priority,
            retry_policy=config.retry,
        )
    if isinstance(config, TerminalStrategyConfig):
        options = PtyOptions(
            timeout_seconds=config.timeout_seconds,
            idle_timeout_seconds=config.idle_timeout_seconds,
            stop_patterns=tuple(config.stop_patterns),
            send_rules=tuple(config.send_rules),
            extra_args=tuple(config.extra_args),
            env=config.env,
            settle_after_stop_seconds=config.settle_after_stop_seconds,
        )
        return TerminalStrategy(
            config.id,
            binary=config.binary,
            input_text=config.input,
            options=options,
            parser=parser,
            priority=config.priority,
            retry_policy=config.retry,
        )
    if isinstance(config, LocalProcessStrategyConfig):
        return LocalProcessStrategy(
            config.id,
            command=config.command,
            args=tuple(config.args),
            env=config.env,
            timeout_seconds=config.timeout_seconds,
            parser=parser,
            priority=config.priority,
        )

    msg = f"Unsupported strategy configuration: {type(config).__name__}"
    raise TypeError(msg)


def build_registry(config: ProvidersConfig) -> StrategyRegistry:
    """Build a strategy registry from validated configuration.

    Disabled strategies are left out; providers keep their configured
    strategy order.

    Args:
        config: Validated providers configuration.

    Returns:
        Registry with one entry per provider.
    """
    registry = StrategyRegistry()
    for provider in config.providers:
        # Providers whose strategies are all disabled still resolve
        registry.register_all(
            provider.id,
            (build_strategy(s) for s in provider.strategies if s.enabled),
        )
    return registry


class ProviderConfigLoader:
    """Loads and validates providers.yaml."""

    def __init__(self) -> None:
        """Initialize the loader."""
        self._checksum: str | None = None
        self._validation_errors: list[dict[str, str]] = []
        self._validation_duration_ms: float = 0

    @property
    def checksum(self) -> str | None:
        """Get the SHA-256 checksum of the last loaded file."""
        return self._checksum

    @property
    def validation_errors(self) -> list[dict[str, str]]:
        """Get validation errors if any."""
        return self._validation_errors.copy()

    def load(self, file_path: Path) -> ProvidersConfig:
        """Load and validate a providers file.

        Args:
            file_path: Path to providers.yaml.

        Returns:
            Validated configuration.

        Raises:
            ConfigValidationError: If the file is missing or unreadable, is
                not UTF-8, is not valid YAML, or does not match the schema.
        """
        start_time = time.perf_counter()
        self._validation_errors = []
        log = logger.bind(component="config", file_path=str(file_path))
        log.info("loading_config_file", file_type="providers")

        try:
            content_bytes = file_path.read_bytes()
            self._checksum = hashlib.sha256(content_bytes).hexdigest()
            data = yaml.safe_load(content_bytes.decode("utf-8")) or {}
            config = ProvidersConfig.model_validate(data)
        except FileNotFoundError as e:
            self._record("file", str(e), "file_not_found")
            log.error("config_file_not_found", error=str(e))
            raise ConfigValidationError(self.validation_errors, str(file_path)) from e
        except OSError as e:
            self._record("file", str(e), "file_unreadable")
            log.error("config_file_unreadable", error=str(e))
            raise ConfigValidationError(self.validation_errors, str(file_path)) from e
        except UnicodeDecodeError as e:
            self._record("file", f"File is not valid UTF-8: {e}", "encoding_error")
            log.error("config_encoding_error", error=str(e))
            raise ConfigValidationError(self.validation_errors, str(file_path)) from e
        except yaml.YAMLError as e:
            self._record("yaml", str(e), "yaml_parse_error")
            log.error("config_yaml_parse_error", error=str(e))
            raise ConfigValidationError(self.validation_errors, str(file_path)) from e
        except ValidationError as e:
            for err in e.errors():
                self._record(
                    ".".join(str(loc) for loc in err["loc"]), err["msg"], err["type"]
                )
            log.error(
                "config_validation_failed",
                validation_error_count=len(self._validation_errors),
                errors=self._validation_errors,
            )
            raise ConfigValidationError(self.validation_errors, str(file_path)) from e

        self._validation_duration_ms = (time.perf_counter() - start_time) * 1000
        log.info(
            "config_file_loaded",
            file_sha256=self._checksum,
            provider_count=len(config.providers),
            config_validation_duration_ms=self._validation_duration_ms,
        )
        return config

    def load_registry(self, file_path: Path) -> tuple[ProvidersConfig, StrategyRegistry]:
        """Load a providers file and build its strategy registry."""
        config = self.load(file_path)
        return config, build_registry(config)

    def _record(self, loc: str, msg: str, error_type: str) -> None:
        self._validation_errors.append({"loc": loc, "msg": msg, "type": error_type})

    def get_validation_summary_json(self) -> str:
        """Get validation summary as JSON string with stable ordering."""
        return json.dumps(
            {
                "file_sha256": self._checksum,
                "validation_error_count": len(self._validation_errors),
                "validation_errors": self._validation_errors,
                "validation_duration_ms": self._validation_duration_ms,
            },
            sort_keys=True,
            indent=2,
        )
