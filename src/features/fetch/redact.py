"""Redaction helpers so credentials never reach the logs."""

import re


# Headers whose values are credentials
SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "cookie",
        "proxy-authorization",
        "set-cookie",
        "x-api-key",
    }
)

REDACTED_VALUE = "[REDACTED]"

# Visible prefix when a secret is shown in diagnostics
SECRET_VISIBLE_PREFIX = 4

_URL_CREDENTIALS_RE = re.compile(r"(https?://)([^:/@]+):([^@/]+)@")


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Redact sensitive headers for logging.

    Args:
        headers: Original headers dictionary.

    Returns:
        New dictionary with credential values replaced.
    """
    return {
        key: REDACTED_VALUE if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


def redact_url_credentials(url: str) -> str:
    """Redact user:password credentials embedded in a URL."""
    return _URL_CREDENTIALS_RE.sub(r"\1[REDACTED]:[REDACTED]@", url)


def mask_secret(secret: str | None) -> str:
    """Mask a token or API key, keeping a short prefix for diagnostics.

    Args:
        secret: The secret value.

    Returns:
        Masked representation such as ``sk-a…[REDACTED]``.
    """
    if not secret:
        return REDACTED_VALUE
    if len(secret) <= SECRET_VISIBLE_PREFIX * 2:
        return REDACTED_VALUE
    return f"{secret[:SECRET_VISIBLE_PREFIX]}…{REDACTED_VALUE}"
