"""Provider and strategy configuration schema."""

from typing import Annotated, Literal

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from src.features.fetch.constants import SECRET_PLACEHOLDER
from src.features.fetch.retry import RetryPolicy
from src.features.host.browser import Browser
from src.features.pty.models import SendRule
from src.features.strategies.parsers import PARSERS


IdField = Annotated[
    str, Field(min_length=1, max_length=100, pattern=r"^[a-z0-9_-]+$")
]


def _validate_url(value: str) -> str:
    if not value.startswith(("http://", "https://")):
        msg = "URL must start with http:// or https://"
        raise ValueError(msg)
    return value


UrlField = Annotated[str, Field(min_length=1), AfterValidator(_validate_url)]


class StrategyConfigBase(BaseModel):
    """Fields shared by every strategy configuration.

    Attributes:
        id: Strategy identifier, unique within its provider.
        parser: Name of the parse transform applied to the raw output.
        priority: Priority override; omitted means the kind's default.
        enabled: Whether the strategy is registered.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: IdField
    parser: str
    priority: Annotated[int, Field(ge=0, le=1000)] | None = None
    enabled: bool = True

    @field_validator("parser")
    @classmethod
    def validate_parser(cls, v: str) -> str:
        """Ensure the parser name is known."""
        if v not in PARSERS:
            msg = f"Unknown parser '{v}'. Available: {', '.join(sorted(PARSERS))}"
            raise ValueError(msg)
        return v


class TokenApiStrategyConfig(StrategyConfigBase):
    """Remote API reached with a stored OAuth token."""

    kind: Literal["remote_api_token"]
    url: UrlField
    service: Annotated[str, Field(min_length=1)]
    account: Annotated[str, Field(min_length=1)] = "oauth_token"
    retry: RetryPolicy = Field(default_factory=RetryPolicy)


class ApiKeyStrategyConfig(StrategyConfigBase):
    """Remote API reached with a stored API key."""

    kind: Literal["remote_api_key"]
    url: UrlField
    service: Annotated[str, Field(min_length=1)]
    account: Annotated[str, Field(min_length=1)] = "api_key"
    headers: dict[str, str] | None = None
    retry: RetryPolicy = Field(default_factory=RetryPolicy)

    @field_validator("headers")
    @classmethod
    def validate_header_templates(
        cls, v: dict[str, str] | None
    ) -> dict[str, str] | None:
        """Ensure header templates reference the secret instead of embedding it."""
        if v is None:
            return v
        for name, template in v.items():
            if SECRET_PLACEHOLDER not in template:
                msg = (
                    f"Header '{name}' must use the "
                    f"'{SECRET_PLACEHOLDER}' placeholder"
                )
                raise ValueError(msg)
        return v


class BrowserSessionStrategyConfig(StrategyConfigBase):
    """Web dashboard reached with imported browser cookies."""

    kind: Literal["browser_session"]
    url: UrlField
    domain: Annotated[str, Field(min_length=1)]
    browsers: list[Browser] | None = None
    retry: RetryPolicy = Field(default_factory=RetryPolicy)


class TerminalStrategyConfig(StrategyConfigBase):
    """Interactive CLI driven through a pseudo-terminal."""

    kind: Literal["interactive_terminal"]
    binary: Annotated[str, Field(min_length=1)]
    input: str = ""
    timeout_seconds: Annotated[float, Field(gt=0.0, le=600.0)] = 30.0
    idle_timeout_seconds: Annotated[float, Field(gt=0.0, le=600.0)] | None = None
    stop_patterns: Annotated[list[str], Field(min_length=1)]
    send_rules: list[SendRule] = Field(default_factory=list)
    extra_args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    settle_after_stop_seconds: Annotated[float, Field(ge=0.0, le=10.0)] = 0.0
    retry: RetryPolicy = Field(default_factory=RetryPolicy.no_retry)


class LocalProcessStrategyConfig(StrategyConfigBase):
    """CLI run once in a machine-readable mode."""

    kind: Literal["local_process_protocol"]
    command: Annotated[str, Field(min_length=1)]
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: Annotated[float, Field(gt=0.0, le=600.0)] = 30.0


StrategyConfig = Annotated[
    TokenApiStrategyConfig
    | ApiKeyStrategyConfig
    | BrowserSessionStrategyConfig
    | TerminalStrategyConfig
    | LocalProcessStrategyConfig,
    Field(discriminator="kind"),
]


class ProviderConfig(BaseModel):
    """Configuration for one provider.

    Attributes:
        id: Provider identifier.
        name: Human-readable name.
        strategies: Strategies in registration order.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: IdField
    name: Annotated[str, Field(min_length=1, max_length=200)]
    strategies: list[StrategyConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_strategy_ids(self) -> "ProviderConfig":
        """Ensure strategy IDs are unique within the provider."""
        ids = [s.id for s in self.strategies]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            msg = f"Duplicate strategy IDs: {', '.join(duplicates)}"
            raise ValueError(msg)
        return self


class ProvidersConfig(BaseModel):
    """Root configuration for providers.yaml.

    Attributes:
        version: Schema version.
        allowed_domains: Hosts HTTP strategies may contact; empty allows all.
        providers: Provider configurations.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: Annotated[str, Field(pattern=r"^\d+\.\d+$")] = "1.0"
    allowed_domains: list[str] = Field(default_factory=list)
    providers: list[ProviderConfig]

    @field_validator("allowed_domains")
    @classmethod
    def normalize_domains(cls, v: list[str]) -> list[str]:
        """Lower-case domains and strip leading dots."""
        return [d.lower().lstrip(".") for d in v]

    @model_validator(mode="after")
    def validate_unique_ids(self) -> "ProvidersConfig":
        """Ensure all provider IDs are unique."""
        ids = [p.id for p in self.providers]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            msg = f"Duplicate provider IDs: {', '.join(duplicates)}"
            raise ValueError(msg)
        return self

    def get_provider(self, provider_id: str) -> ProviderConfig | None:
        """Look up a provider by id."""
        return next((p for p in self.providers if p.id == provider_id), None)
