"""Constants for the safe fetch layer.

Centralizes limits, windows, and defaults shared across fetch modules.
"""

# HTTP Status Code Ranges
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300

# Allowed URL schemes
ALLOWED_SCHEMES = frozenset({"http", "https"})

# Rate limiting windows (milliseconds) and default ceilings
MINUTE_WINDOW_MS = 60_000
HOUR_WINDOW_MS = 3_600_000
DEFAULT_MAX_REQUESTS_PER_MINUTE = 60
DEFAULT_MAX_REQUESTS_PER_HOUR = 1000

# Client pool
DEFAULT_CLIENT_POOL_SIZE = 100
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_USER_AGENT = "feedguard/1.0"

# Retry schedule: 1s, 2s, 4s, ...
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_MS = 1000

# Response Size Limits
DEFAULT_MAX_RESPONSE_SIZE_BYTES = 10 * 1024 * 1024  # 10 MB

# Chunk size for streaming reads
DEFAULT_CHUNK_SIZE = 8192

# Marker rendered in place of credential material
MASKED_VALUE = "***MASKED***"
