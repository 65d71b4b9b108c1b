"""CLI commands for fetching provider usage."""

import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import click
import structlog

from src.features.config.error_hints import format_validation_error
from src.features.config.loader import ConfigValidationError, ProviderConfigLoader
from src.features.config.schemas.providers import ProvidersConfig
from src.features.fetch.bridge import get_execution_bridge
from src.features.fetch.channels import SourceMode
from src.features.fetch.context import FetchContext, FetchSettings
from src.features.fetch.metrics import FetchMetrics
from src.features.fetch.pipeline import AttemptOutcome, FetchOutcome
from src.features.fetch.service import (
    StrategyRegistry,
    UnknownProviderError,
    fetch_providers,
)
from src.features.fetch.strategy import describe_strategies
from src.features.host.browser import FirefoxCookieImporter
from src.features.host.credentials import get_credential_cache
from src.features.host.http import HttpClient
from src.features.host.process import ProcessRunner
from src.features.observability.logging import configure_logging
from src.features.pty.runner import PtyRunner
from src.settings import AppSettings, get_settings


logger = structlog.get_logger()

EXIT_FETCH_FAILED = 1
EXIT_CONFIG_ERROR = 2


@dataclass
class CliState:
    """Options shared by every command."""

    settings: AppSettings
    config_path: Path


def _load(state: CliState) -> tuple[ProvidersConfig, StrategyRegistry]:
    """Load the providers file, exiting with hints on failure."""
    loader = ProviderConfigLoader()
    try:
        return loader.load_registry(state.config_path)
    except ConfigValidationError:
        click.echo("Configuration validation failed:", err=True)
        for error in loader.validation_errors:
            formatted = format_validation_error(
                location=error["loc"],
                message=error["msg"],
                error_type=error.get("type", "unknown"),
                include_hint=True,
            )
            click.echo(f"  - {formatted}", err=True)
        sys.exit(EXIT_CONFIG_ERROR)


def _build_context(
    settings: AppSettings,
    config: ProvidersConfig,
    source_mode: SourceMode,
    timeout_seconds: float,
) -> FetchContext:
    """Assemble the host capabilities used by strategies."""
    return FetchContext(
        settings=FetchSettings(
            source_mode=source_mode,
            timeout_seconds=timeout_seconds,
            probe_timeout_seconds=settings.probe_timeout_seconds,
            failure_policy=settings.failure_policy,
        ),
        http=HttpClient(
            timeout_seconds=timeout_seconds,
            allowed_domains=frozenset(config.allowed_domains) or None,
        ),
        credentials=get_credential_cache(),
        browser=FirefoxCookieImporter(),
        process=ProcessRunner(),
        pty=PtyRunner(),
    )


def _close_context(ctx: FetchContext) -> None:
    if ctx.http is not None:
        ctx.http.close()


def format_outcome(outcome: FetchOutcome) -> list[str]:
    """Render an outcome as human-readable lines.

    Args:
        outcome: Pipeline outcome.

    Returns:
        Lines of text, without trailing newlines.
    """
    lines: list[str] = []
    if outcome.snapshot is not None:
        lines.append(
            f"{outcome.provider_id}: ok via {outcome.source_strategy} "
            f"({outcome.snapshot.fetch_source})"
        )
        for name in ("primary", "secondary", "tertiary"):
            window = getattr(outcome.snapshot, name)
            if window is None:
                continue
            reset = ""
            if window.reset_description:
                reset = f" (resets {window.reset_description})"
            marker = " !" if window.is_approaching_limit else ""
            lines.append(
                f"  {name}: {window.used_percent:.1f}% used, "
                f"{window.remaining_percent:.1f}% left{reset}{marker}"
            )
        identity = outcome.snapshot.identity
        if identity is not None and identity.email:
            lines.append(f"  account: {identity.email}")
    elif outcome.error is not None:
        lines.append(
            f"{outcome.provider_id}: failed [{outcome.error.error_class.value}] "
            f"{outcome.error.message}"
        )
        if outcome.error.hint:
            lines.append(f"  hint: {outcome.error.hint}")

    lines.append("  attempts:")
    if not outcome.attempts:
        lines.append("    (none)")
    for attempt in outcome.attempts:
        detail = ""
        if attempt.outcome == AttemptOutcome.SKIPPED:
            detail = f": {attempt.reason}"
        elif attempt.outcome == AttemptOutcome.FAILED and attempt.error_class:
            detail = f": {attempt.error_class.value} {attempt.message}"
        lines.append(
            f"    - {attempt.strategy_id} [{attempt.kind.value}] "
            f"{attempt.outcome.value}{detail}"
        )
    return lines


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to providers.yaml (default: USAGE_FETCH_PROVIDERS_FILE).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option(
    "--json-logs/--console-logs",
    default=None,
    help="Log format (default: USAGE_FETCH_LOG_JSON).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Path | None,
    verbose: bool,
    json_logs: bool | None,
) -> None:
    """Usage telemetry fetch CLI."""
    settings = get_settings()
    configure_logging(
        level=logging.DEBUG if verbose else settings.log_level,
        json_format=settings.log_json if json_logs is None else json_logs,
    )
    ctx.obj = CliState(
        settings=settings,
        config_path=config_path or settings.providers_file,
    )


@cli.command()
@click.argument("provider_ids", nargs=-1, required=True)
@click.option(
    "--source-mode",
    type=click.Choice([m.value for m in SourceMode]),
    default=None,
    help="Restrict which channel kinds may be used.",
)
@click.option(
    "--timeout",
    "timeout_seconds",
    type=click.FloatRange(min=0.1, max=600.0),
    default=None,
    help="Per-strategy timeout in seconds.",
)
@click.option("--json/--text", "json_output", default=False, help="Output format.")
@click.pass_obj
def fetch(
    state: CliState,
    provider_ids: tuple[str, ...],
    source_mode: str | None,
    timeout_seconds: float | None,
    json_output: bool,
) -> None:
    """Fetch usage for one or more providers."""
    settings = state.settings
    config, registry = _load(state)

    unknown = [pid for pid in provider_ids if pid not in registry]
    if unknown:
        click.echo(f"Unknown provider(s): {', '.join(unknown)}", err=True)
        sys.exit(EXIT_CONFIG_ERROR)

    fetch_ctx = _build_context(
        settings,
        config,
        SourceMode(source_mode) if source_mode else settings.source_mode,
        timeout_seconds or settings.fetch_timeout_seconds,
    )
    get_execution_bridge(settings.worker_threads)

    log = logger.bind(component="cli", command="fetch")
    log.info("fetch_started", providers=list(provider_ids))
    try:
        outcomes = asyncio.run(fetch_providers(provider_ids, registry, fetch_ctx))
    finally:
        _close_context(fetch_ctx)

    if json_output:
        payload = [o.model_dump(mode="json") for o in outcomes.values()]
        click.echo(json.dumps(payload, indent=2))
    else:
        for outcome in outcomes.values():
            for line in format_outcome(outcome):
                click.echo(line)

    failed = [pid for pid, o in outcomes.items() if not o.success]
    log.info(
        "fetch_complete",
        failed=failed,
        metrics=FetchMetrics.get_instance().to_dict(),
    )
    if failed:
        sys.exit(EXIT_FETCH_FAILED)


@cli.command()
@click.argument("provider_id")
@click.option(
    "--source-mode",
    type=click.Choice([m.value for m in SourceMode]),
    default=None,
    help="Restrict which channel kinds are listed.",
)
@click.option("--json/--text", "json_output", default=False, help="Output format.")
@click.pass_obj
def strategies(
    state: CliState,
    provider_id: str,
    source_mode: str | None,
    json_output: bool,
) -> None:
    """Show a provider's strategies in the order they would be tried."""
    settings = state.settings
    config, registry = _load(state)
    try:
        provider_strategies = registry.strategies_for(provider_id)
    except UnknownProviderError as e:
        click.echo(str(e), err=True)
        sys.exit(EXIT_CONFIG_ERROR)

    fetch_ctx = _build_context(
        settings,
        config,
        SourceMode(source_mode) if source_mode else settings.source_mode,
        settings.fetch_timeout_seconds,
    )
    get_execution_bridge(settings.worker_threads)
    try:
        infos = asyncio.run(describe_strategies(provider_strategies, fetch_ctx))
    finally:
        _close_context(fetch_ctx)

    if json_output:
        click.echo(json.dumps([i.to_dict() for i in infos], indent=2))
        return

    provider = config.get_provider(provider_id)
    name = provider.name if provider is not None else provider_id
    click.echo(f"Strategies for {name} ({provider_id}):")
    for info in infos:
        status = "available" if info.available else "unavailable"
        click.echo(
            f"  {info.priority:>4}  {info.strategy_id} "
            f"[{info.kind.value}] {status}"
        )


@cli.command()
@click.pass_obj
def providers(state: CliState) -> None:
    """List configured providers."""
    config, _ = _load(state)
    for provider in config.providers:
        enabled = sum(1 for s in provider.strategies if s.enabled)
        click.echo(f"{provider.id}\t{provider.name}\t{enabled} strategies")


@cli.command()
@click.pass_obj
def validate(state: CliState) -> None:
    """Validate the providers file without fetching anything."""
    config, _ = _load(state)
    click.echo("Configuration is valid!")
    click.echo(f"  Providers: {len(config.providers)}")
    click.echo(
        f"  Strategies: {sum(len(p.strategies) for p in config.providers)}"
    )


if __name__ == "__main__":
    cli()
