"""Remote API strategies authenticated with a stored credential."""

import structlog

from src.features.fetch.channels import ChannelKind
from src.features.fetch.constants import SECRET_PLACEHOLDER
from src.features.fetch.context import FetchContext
from src.features.fetch.errors import ErrorCategory, FetchError, FetchErrorClass
from src.features.fetch.retry import RetryPolicy, execute_with_retry
from src.features.snapshot.models import UsageSnapshot
from src.features.strategies.parsers import SnapshotParser


logger = structlog.get_logger()


def _lookup_credential(ctx: FetchContext, service: str, account: str) -> str | None:
    if ctx.credentials is None:
        return None
    return ctx.credentials.get_cached(service, account)


def _fetch_with_credential(  # noqa: PLR0913
    ctx: FetchContext,
    *,
    strategy_id: str,
    url: str,
    service: str,
    account: str,
    headers_for: dict[str, str] | None,
    retry_policy: RetryPolicy,
) -> bytes:
    """GET a URL with a cached credential, retrying transient failures.

    A rejected credential is evicted from the cache so the next run reads
    a fresh one.
    """
    secret = _lookup_credential(ctx, service, account)
    if secret is None or ctx.http is None:
        raise FetchError(
            FetchErrorClass.NOT_AVAILABLE,
            f"No {account} credential stored for {service}",
        )
    http = ctx.http

    def request() -> bytes:
        if headers_for is None:
            return http.get_with_auth(url, secret)
        headers = {
            name: value.replace(SECRET_PLACEHOLDER, secret)
            for name, value in headers_for.items()
        }
        return http.get(url, headers)

    try:
        return execute_with_retry(
            request,
            retry_policy,
            sleep=ctx.pause,
            operation_name=strategy_id,
            cancel_event=ctx.cancel_event,
        )
    except FetchError as e:
        if e.category == ErrorCategory.AUTHENTICATION and ctx.credentials is not None:
            ctx.credentials.invalidate(service, account)
            logger.info(
                "credential_rejected",
                component="strategy",
                strategy_id=strategy_id,
                service=service,
                account=account,
            )
        raise


class TokenApiStrategy:
    """Fetches usage from a remote API with a stored OAuth token."""

    kind = ChannelKind.REMOTE_API_TOKEN

    def __init__(  # noqa: PLR0913
        self,
        strategy_id: str,
        *,
        url: str,
        service: str,
        parser: SnapshotParser,
        account: str = "oauth_token",
        priority: int | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize the strategy.

        Args:
            strategy_id: Stable identifier.
            url: Usage endpoint.
            service: Credential service name.
            parser: Transform from response body to snapshot.
            account: Credential account name.
            priority: Priority override; defaults to the kind's default.
            retry_policy: Retry policy for the request.
        """
        self._strategy_id = strategy_id
        self._url = url
        self._service = service
        self._account = account
        self._parser = parser
        self._priority = self.kind.default_priority if priority is None else priority
        self._retry_policy = retry_policy or RetryPolicy()

    @property
    def strategy_id(self) -> str:
        """Get the strategy identifier."""
        return self._strategy_id

    @property
    def priority(self) -> int:
        """Get the priority."""
        return self._priority

    @property
    def retry_policy(self) -> RetryPolicy:
        """Get the retry policy."""
        return self._retry_policy

    def is_available(self, ctx: FetchContext) -> bool:
        """Available when an HTTP client and a token are present."""
        return (
            ctx.http is not None
            and _lookup_credential(ctx, self._service, self._account) is not None
        )

    def fetch(self, ctx: FetchContext) -> UsageSnapshot:
        """Fetch and parse the usage endpoint."""
        body = _fetch_with_credential(
            ctx,
            strategy_id=self._strategy_id,
            url=self._url,
            service=self._service,
            account=self._account,
            headers_for=None,
            retry_policy=self._retry_policy,
        )
        return self._parser(body)


class ApiKeyStrategy:
    """Fetches usage from a remote API with a stored API key.

    The key is sent as a bearer token unless header templates are given,
    e.g. ``{"x-api-key": "{secret}"}``.
    """

    kind = ChannelKind.REMOTE_API_KEY

    def __init__(  # noqa: PLR0913
        self,
        strategy_id: str,
        *,
        url: str,
        service: str,
        parser: SnapshotParser,
        account: str = "api_key",
        headers: dict[str, str] | None = None,
        priority: int | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize the strategy.

        Args:
            strategy_id: Stable identifier.
            url: Usage endpoint.
            service: Credential service name.
            parser: Transform from response body to snapshot.
            account: Credential account name.
            headers: Header templates; ``{secret}`` is replaced by the key.
            priority: Priority override; defaults to the kind's default.
            retry_policy: Retry policy for the request.
        """
        self._strategy_id = strategy_id
        self._url = url
        self._service = service
        self._account = account
        self._headers = headers
        self._parser = parser
        self._priority = self.kind.default_priority if priority is None else priority
        self._retry_policy = retry_policy or RetryPolicy()

    @property
    def strategy_id(self) -> str:
        """Get the strategy identifier."""
        return self._strategy_id

    @property
    def priority(self) -> int:
        """Get the priority."""
        return self._priority

    def is_available(self, ctx: FetchContext) -> bool:
        """Available when an HTTP client and a key are present."""
        return (
            ctx.http is not None
            and _lookup_credential(ctx, self._service, self._account) is not None
        )

    def fetch(self, ctx: FetchContext) -> UsageSnapshot:
        """Fetch and parse the usage endpoint."""
        body = _fetch_with_credential(
            ctx,
            strategy_id=self._strategy_id,
            url=self._url,
            service=self._service,
            account=self._account,
            headers_for=self._headers,
            retry_policy=self._retry_policy,
        )
        return self._parser(body)
