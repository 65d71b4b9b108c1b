"""Error hints for provider configuration validation errors.

Provides user-friendly hints with actionable remediation steps
for common validation errors.
"""

from typing import Final


# Mapping of error types to user-friendly hints
ERROR_HINTS: Final[dict[str, str]] = {
    "missing": "This field is required. Please add it to your configuration.",
    "extra_forbidden": "Unknown field. Check for typos in the field name.",
    "literal_error": "Check the allowed values in the documentation.",
    "union_tag_invalid": (
        "Unknown strategy kind. Use one of: local_process_protocol, "
        "interactive_terminal, remote_api_token, remote_api_key, browser_session."
    ),
    "union_tag_not_found": "Every strategy needs a 'kind' field.",
    "enum": "Check the allowed values in the documentation.",
    "int_type": "This field must be an integer (whole number).",
    "float_type": "This field must be a number.",
    "string_type": "This field must be a text string.",
    "bool_type": "This field must be true or false.",
    "list_type": "This field must be a list/array.",
    "dict_type": "This field must be an object/mapping.",
    "greater_than": "The value is too small. It must be above the minimum.",
    "greater_than_equal": "The value is too small. Check the minimum allowed.",
    "less_than_equal": "The value is too large. Check the maximum allowed.",
    "too_short": "The list is empty. Add at least one entry.",
    "string_too_short": "The text is too short. Check minimum length requirement.",
    "string_too_long": "The text is too long. Check maximum length requirement.",
    "string_pattern_mismatch": (
        "The format is invalid. Use lowercase letters, numbers, hyphens, "
        "or underscores only."
    ),
    "value_error": "Check the value format.",
    "file_not_found": "The file does not exist. Check the file path.",
    "file_unreadable": "The file could not be read. Check that it is a file and its permissions.",
    "encoding_error": "The file must be saved as UTF-8 text.",
    "yaml_parse_error": "Invalid YAML syntax. Check for proper indentation and formatting.",
}

# Field-specific hints for more context
FIELD_HINTS: Final[dict[str, str]] = {
    "id": "Use lowercase letters, numbers, hyphens, or underscores (e.g., 'claude-oauth').",
    "url": "Must be a valid HTTP/HTTPS URL (e.g., 'https://api.example.com/usage').",
    "parser": "Must be one of: percent_left_text, snapshot_json.",
    "priority": "Must be between 0 and 1000; higher is tried first.",
    "stop_patterns": "List at least one text fragment that marks complete output (e.g., '% left').",
    "headers": "Header values must use the '{secret}' placeholder instead of a literal key.",
    "browsers": "Must be a list of: firefox, safari, chrome, arc, brave, edge.",
    "max_attempts": "Must be between 1 and 10.",
}


def get_error_hint(error_type: str, field_name: str | None = None) -> str:
    """Get a user-friendly hint for a validation error.

    Args:
        error_type: The Pydantic error type (e.g., 'missing', 'enum').
        field_name: Optional field name for field-specific hints.

    Returns:
        A user-friendly hint string.
    """
    if field_name:
        # 'providers.0.strategies.1.url' -> 'url'
        simple_field = field_name.split(".")[-1]
        if simple_field in FIELD_HINTS:
            return FIELD_HINTS[simple_field]

    return ERROR_HINTS.get(
        error_type, "Check the configuration documentation for valid values."
    )


def format_validation_error(
    location: str,
    message: str,
    error_type: str,
    *,
    include_hint: bool = True,
) -> str:
    """Format a validation error with optional hint.

    Args:
        location: The error location (e.g., 'providers.0.strategies.1.url').
        message: The original error message.
        error_type: The error type.
        include_hint: Whether to include a hint.

    Returns:
        Formatted error string.
    """
    base = f"{location}: {message}"
    if include_hint:
        hint = get_error_hint(error_type, location)
        return f"{base}\n    Hint: {hint}"
    return base
