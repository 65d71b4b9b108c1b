"""Host capabilities consumed by fetch strategies."""

from src.features.host.browser import (
    Browser,
    BrowserSessionImporter,
    Cookie,
    FirefoxCookieImporter,
    ImportedCookies,
    cookies_to_header,
)
from src.features.host.credentials import (
    ChainedCredentialStore,
    CredentialCache,
    CredentialStore,
    EnvironmentCredentialStore,
    KeyringCredentialStore,
    get_credential_cache,
)
from src.features.host.http import HttpClient, classify_status, parse_retry_after
from src.features.host.process import ProcessOutput, ProcessRunner


__all__ = [
    "Browser",
    "BrowserSessionImporter",
    "ChainedCredentialStore",
    "Cookie",
    "CredentialCache",
    "CredentialStore",
    "EnvironmentCredentialStore",
    "FirefoxCookieImporter",
    "HttpClient",
    "ImportedCookies",
    "KeyringCredentialStore",
    "ProcessOutput",
    "ProcessRunner",
    "classify_status",
    "cookies_to_header",
    "get_credential_cache",
    "parse_retry_after",
]
