"""HTTP client capability for remote-API and browser-session strategies."""

from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from io import BytesIO
from urllib.parse import urlparse

import httpx
import structlog

from src.features.fetch.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    DEFAULT_MAX_RESPONSE_SIZE_BYTES,
    HTTP_STATUS_FORBIDDEN,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    HTTP_STATUS_TOO_MANY_REQUESTS,
    HTTP_STATUS_UNAUTHORIZED,
    USER_AGENT,
)
from src.features.fetch.errors import FetchError, FetchErrorClass
from src.features.fetch.redact import redact_headers, redact_url_credentials


logger = structlog.get_logger()


def parse_retry_after(value: str | None, now: datetime | None = None) -> int | None:
    """Parse a Retry-After header value.

    Args:
        value: Header value (seconds or HTTP date).
        now: Reference time for HTTP dates. Defaults to the current time.

    Returns:
        Seconds to wait, or None if absent or not parseable.
    """
    if not value:
        return None

    try:
        return max(0, int(value.strip()))
    except ValueError:
        pass

    try:
        dt = parsedate_to_datetime(value)
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    delta = dt - (now or datetime.now(UTC))
    return max(0, int(delta.total_seconds()))


def classify_status(status_code: int, headers: httpx.Headers) -> FetchError | None:
    """Classify an HTTP status code.

    Args:
        status_code: HTTP status code.
        headers: Response headers.

    Returns:
        FetchError if the status indicates failure, None for 2xx.
    """
    if HTTP_STATUS_OK_MIN <= status_code < HTTP_STATUS_OK_MAX:
        return None

    if status_code in (HTTP_STATUS_UNAUTHORIZED, HTTP_STATUS_FORBIDDEN):
        return FetchError(
            FetchErrorClass.AUTHENTICATION_FAILED,
            f"Authentication rejected ({status_code})",
            status_code=status_code,
        )

    if status_code == HTTP_STATUS_TOO_MANY_REQUESTS:
        return FetchError(
            FetchErrorClass.RATE_LIMITED,
            "Rate limited (429 Too Many Requests)",
            status_code=status_code,
            retry_after=parse_retry_after(headers.get("retry-after")),
        )

    return FetchError(
        FetchErrorClass.INVALID_RESPONSE,
        f"Unexpected HTTP status {status_code}",
        status_code=status_code,
    )


class HttpClient:
    """Blocking HTTP client that raises classified FetchErrors.

    Provides GET requests with:
    - Bearer-token and cookie authentication helpers
    - An optional domain allowlist
    - Maximum response size enforcement
    - Header and URL credential redaction in logs
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
        allowed_domains: frozenset[str] | None = None,
        max_response_size_bytes: int = DEFAULT_MAX_RESPONSE_SIZE_BYTES,
        user_agent: str = USER_AGENT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            timeout_seconds: Per-request timeout.
            allowed_domains: If set, only these hosts (and their subdomains)
                may be requested.
            max_response_size_bytes: Largest body accepted.
            user_agent: User-Agent header value.
            transport: Optional httpx transport (e.g. MockTransport in tests).
        """
        self._allowed_domains = allowed_domains
        self._max_size = max_response_size_bytes
        self._client = httpx.Client(
            timeout=timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": user_agent, "Accept": "application/json, */*"},
            transport=transport,
        )
        self._log = logger.bind(component="http")

    def close(self) -> None:
        """Close the underlying connection pool."""
        self._client.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def is_domain_allowed(self, url: str) -> bool:
        """Check a URL's host against the allowlist.

        Args:
            url: URL to check.

        Returns:
            True if there is no allowlist or the host is on it.
        """
        if self._allowed_domains is None:
            return True
        host = (urlparse(url).hostname or "").lower()
        return any(
            host == domain or host.endswith(f".{domain}")
            for domain in self._allowed_domains
        )

    def get(self, url: str, headers: dict[str, str] | None = None) -> bytes:
        """GET a URL and return the body.

        Args:
            url: URL to fetch.
            headers: Extra request headers.

        Returns:
            Response body bytes.

        Raises:
            FetchError: Classified failure.
        """
        request_headers = headers or {}
        log = self._log.bind(
            url=redact_url_credentials(url), headers=redact_headers(request_headers)
        )

        if not self.is_domain_allowed(url):
            log.warning("domain_not_allowed")
            raise FetchError(
                FetchErrorClass.DOMAIN_NOT_ALLOWED,
                f"Domain not allowed: {urlparse(url).hostname}",
            )

        try:
            with self._client.stream("GET", url, headers=request_headers) as response:
                error = classify_status(response.status_code, response.headers)
                if error is not None:
                    log.info(
                        "http_error_status",
                        status_code=response.status_code,
                        error_class=error.error_class.value,
                    )
                    raise error
                body = self._read_body_with_limit(response)
        except httpx.TimeoutException as e:
            raise FetchError(
                FetchErrorClass.NETWORK_TIMEOUT, f"Request timed out: {e}"
            ) from e
        except httpx.TransportError as e:
            raise FetchError(
                FetchErrorClass.CONNECTION_ERROR, f"Connection failed: {e}"
            ) from e

        log.debug("http_request_complete", bytes=len(body))
        return body

    def get_with_auth(self, url: str, bearer: str) -> bytes:
        """GET a URL with a bearer token."""
        return self.get(url, {"Authorization": f"Bearer {bearer}"})

    def get_with_cookies(self, url: str, cookie_header: str) -> bytes:
        """GET a URL with a Cookie header."""
        return self.get(url, {"Cookie": cookie_header})

    def _read_body_with_limit(self, response: httpx.Response) -> bytes:
        """Read response body with size limit.

        Raises:
            FetchError: INVALID_RESPONSE if the body exceeds the limit.
        """
        content_length = response.headers.get("content-length")
        if content_length and content_length.isdigit():
            if int(content_length) > self._max_size:
                msg = (
                    f"Response size {content_length} exceeds limit "
                    f"of {self._max_size} bytes"
                )
                raise FetchError(
                    FetchErrorClass.INVALID_RESPONSE,
                    msg,
                    status_code=response.status_code,
                )

        buffer = BytesIO()
        total_read = 0
        for chunk in response.iter_bytes(chunk_size=DEFAULT_CHUNK_SIZE):
            total_read += len(chunk)
            if total_read > self._max_size:
                msg = (
                    f"Response size exceeded limit of {self._max_size} bytes "
                    f"(read {total_read} bytes)"
                )
                raise FetchError(
                    FetchErrorClass.INVALID_RESPONSE,
                    msg,
                    status_code=response.status_code,
                )
            buffer.write(chunk)
        return buffer.getvalue()
