"""Constants for the fetch layer.

Centralizes HTTP, timeout, and worker pool constants to avoid duplication
across modules.
"""

# HTTP Status Code Ranges
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300
HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_FORBIDDEN = 403
HTTP_STATUS_TOO_MANY_REQUESTS = 429

# Response Size Limits
DEFAULT_MAX_RESPONSE_SIZE_BYTES = 10 * 1024 * 1024  # 10 MB

# Chunk size for streaming reads
DEFAULT_CHUNK_SIZE = 8192

# Maximum retry delay cap for rate limiting (seconds)
MAX_RETRY_AFTER_SECONDS = 60

# Pipeline timeouts (seconds)
DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0
DEFAULT_PROBE_TIMEOUT_SECONDS = 5.0

# How long abandoned work may take to honor cancellation (seconds)
DEFAULT_CANCEL_GRACE_SECONDS = 2.0

# Worker pool used by the execution bridge
DEFAULT_WORKER_THREADS = 4
WORKER_THREAD_NAME_PREFIX = "usage-fetch"

# Exit code used when the worker pool cannot be created
EXIT_BRIDGE_UNAVAILABLE = 70

USER_AGENT = "usage-fetch/1.0"

# Placeholder substituted with the credential in API key header templates
SECRET_PLACEHOLDER = "{secret}"
