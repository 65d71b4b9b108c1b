"""Error types for the fetch engine."""

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class ErrorCategory(str, Enum):
    """Coarse error taxonomy driving retry and fallback decisions.

    - AUTHENTICATION: Missing, expired, or rejected credentials
    - TRANSIENT: Connection failures, timeouts, rate limiting
    - PROTOCOL: Malformed or unexpected responses
    - UNAVAILABLE: Required binary, credential, or capability missing
    - UNRECOVERABLE: The engine itself cannot make progress
    """

    AUTHENTICATION = "AUTHENTICATION"
    TRANSIENT = "TRANSIENT"
    PROTOCOL = "PROTOCOL"
    UNAVAILABLE = "UNAVAILABLE"
    UNRECOVERABLE = "UNRECOVERABLE"


class FetchErrorClass(str, Enum):
    """Fine-grained classification of fetch errors."""

    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    RATE_LIMITED = "RATE_LIMITED"
    TERMINAL_TIMEOUT = "TERMINAL_TIMEOUT"
    PROCESS_TIMEOUT = "PROCESS_TIMEOUT"
    STRATEGY_TIMEOUT = "STRATEGY_TIMEOUT"
    CANCELLED = "CANCELLED"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    PARSE_ERROR = "PARSE_ERROR"
    INCOMPLETE_OUTPUT = "INCOMPLETE_OUTPUT"
    DOMAIN_NOT_ALLOWED = "DOMAIN_NOT_ALLOWED"
    PROCESS_FAILED = "PROCESS_FAILED"
    NOT_AVAILABLE = "NOT_AVAILABLE"
    NO_STRATEGIES_AVAILABLE = "NO_STRATEGIES_AVAILABLE"
    UNKNOWN = "UNKNOWN"

    @property
    def category(self) -> ErrorCategory:
        """Get the coarse category for this error class."""
        return _CATEGORY_BY_CLASS[self]


_CATEGORY_BY_CLASS: dict[FetchErrorClass, ErrorCategory] = {
    FetchErrorClass.AUTHENTICATION_FAILED: ErrorCategory.AUTHENTICATION,
    FetchErrorClass.CONNECTION_ERROR: ErrorCategory.TRANSIENT,
    FetchErrorClass.NETWORK_TIMEOUT: ErrorCategory.TRANSIENT,
    FetchErrorClass.RATE_LIMITED: ErrorCategory.TRANSIENT,
    FetchErrorClass.TERMINAL_TIMEOUT: ErrorCategory.TRANSIENT,
    FetchErrorClass.PROCESS_TIMEOUT: ErrorCategory.TRANSIENT,
    FetchErrorClass.STRATEGY_TIMEOUT: ErrorCategory.TRANSIENT,
    FetchErrorClass.CANCELLED: ErrorCategory.TRANSIENT,
    FetchErrorClass.INVALID_RESPONSE: ErrorCategory.PROTOCOL,
    FetchErrorClass.PARSE_ERROR: ErrorCategory.PROTOCOL,
    FetchErrorClass.INCOMPLETE_OUTPUT: ErrorCategory.PROTOCOL,
    FetchErrorClass.DOMAIN_NOT_ALLOWED: ErrorCategory.PROTOCOL,
    FetchErrorClass.PROCESS_FAILED: ErrorCategory.PROTOCOL,
    FetchErrorClass.UNKNOWN: ErrorCategory.PROTOCOL,
    FetchErrorClass.NOT_AVAILABLE: ErrorCategory.UNAVAILABLE,
    FetchErrorClass.NO_STRATEGIES_AVAILABLE: ErrorCategory.UNAVAILABLE,
}

# User-facing remediation hints, keyed by category
CATEGORY_HINTS: dict[ErrorCategory, str] = {
    ErrorCategory.AUTHENTICATION: (
        "Credentials were rejected or have expired. Log in again with the "
        "provider's CLI or refresh the stored token."
    ),
    ErrorCategory.TRANSIENT: "Temporary failure. Try again in a moment.",
    ErrorCategory.PROTOCOL: (
        "The provider returned data in an unexpected shape. The tool may "
        "have changed its output format."
    ),
    ErrorCategory.UNAVAILABLE: (
        "No usable data source was found. Install the provider's CLI, store "
        "an API key, or sign in through a supported browser."
    ),
}


class FetchError(Exception):
    """A classified failure raised by a strategy or host capability.

    Provides structured error information for retry decisions, the attempt
    trail, and user-facing reporting.
    """

    def __init__(  # noqa: PLR0913
        self,
        error_class: FetchErrorClass,
        message: str,
        *,
        status_code: int | None = None,
        retry_after: int | None = None,
        hint: str | None = None,
    ) -> None:
        """Initialize the fetch error.

        Args:
            error_class: Classification of the error.
            message: Human-readable error message.
            status_code: HTTP status code if available.
            retry_after: Server-provided wait in seconds (rate limiting).
            hint: Optional remediation hint overriding the category default.
        """
        super().__init__(message)
        self.error_class = error_class
        self.message = message
        self.status_code = status_code
        self.retry_after = retry_after
        self.hint = hint

    @property
    def category(self) -> ErrorCategory:
        """Get the coarse category of this error."""
        return self.error_class.category

    @property
    def is_transient(self) -> bool:
        """Check if this error may succeed on a later attempt."""
        return self.category == ErrorCategory.TRANSIENT

    def to_dict(self) -> dict[str, str | int | None]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "error_class": self.error_class.value,
            "category": self.category.value,
            "message": self.message,
            "status_code": self.status_code,
            "retry_after": self.retry_after,
        }


class ErrorRecord(BaseModel):
    """Serializable error record for the attempt trail and outcome.

    Used to report the surfaced failure of a pipeline run.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    error_class: FetchErrorClass = Field(description="Error classification")
    category: ErrorCategory = Field(description="Coarse error category")
    message: Annotated[str, Field(min_length=1, description="Error message")]
    strategy_id: str | None = Field(
        default=None, description="Strategy whose attempt produced the error"
    )
    status_code: int | None = Field(default=None, description="HTTP status code")
    hint: str | None = Field(default=None, description="Remediation hint")

    @classmethod
    def from_exception(
        cls, error: FetchError, strategy_id: str | None = None
    ) -> "ErrorRecord":
        """Create an ErrorRecord from a FetchError exception.

        Args:
            error: The exception to convert.
            strategy_id: Strategy that raised it, if any.

        Returns:
            ErrorRecord instance.
        """
        return cls(
            error_class=error.error_class,
            category=error.category,
            message=error.message,
            strategy_id=strategy_id,
            status_code=error.status_code,
            hint=error.hint or CATEGORY_HINTS.get(error.category),
        )
