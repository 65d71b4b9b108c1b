"""Browser-session strategy using imported cookies."""

from src.features.fetch.channels import ChannelKind
from src.features.fetch.context import FetchContext
from src.features.fetch.errors import FetchError, FetchErrorClass
from src.features.fetch.retry import RetryPolicy, execute_with_retry
from src.features.host.browser import Browser, cookies_to_header
from src.features.snapshot.models import UsageSnapshot
from src.features.strategies.parsers import SnapshotParser


class BrowserSessionStrategy:
    """Fetches usage from a web dashboard with the user's browser session."""

    kind = ChannelKind.BROWSER_SESSION

    def __init__(  # noqa: PLR0913
        self,
        strategy_id: str,
        *,
        url: str,
        domain: str,
        parser: SnapshotParser,
        browsers: tuple[Browser, ...] | None = None,
        priority: int | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize the strategy.

        Args:
            strategy_id: Stable identifier.
            url: Usage endpoint.
            domain: Domain whose cookies authenticate the request.
            parser: Transform from response body to snapshot.
            browsers: Browsers to try, in order.
            priority: Priority override; defaults to the kind's default.
            retry_policy: Retry policy for the request.
        """
        self._strategy_id = strategy_id
        self._url = url
        self._domain = domain
        self._parser = parser
        self._browsers = browsers or Browser.default_priority()
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
        """Available when both an HTTP client and a session importer exist.

        Cookie import itself can prompt for keychain access, so it is
        deferred to fetch.
        """
        return ctx.http is not None and ctx.browser is not None

    def fetch(self, ctx: FetchContext) -> UsageSnapshot:
        """Import cookies and fetch the usage endpoint with them."""
        if ctx.http is None or ctx.browser is None:
            raise FetchError(
                FetchErrorClass.NOT_AVAILABLE, "Browser session import unavailable"
            )
        http = ctx.http

        imported = ctx.browser.import_cookies(self._domain, self._browsers)
        header = cookies_to_header(imported)
        if not header:
            raise FetchError(
                FetchErrorClass.NOT_AVAILABLE,
                f"No unexpired {imported.browser.value} cookies for {self._domain}",
            )

        body = execute_with_retry(
            lambda: http.get_with_cookies(self._url, header),
            self._retry_policy,
            sleep=ctx.pause,
            operation_name=self._strategy_id,
            cancel_event=ctx.cancel_event,
        )
        return self._parser(body)
