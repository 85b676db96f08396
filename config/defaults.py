"""Default configuration values."""

# Prompt creation: attempts and the backoff slept after each failed attempt
DEFAULT_CREATE_ATTEMPTS = 3
DEFAULT_CREATE_RETRY_DELAYS = (1.0, 2.0, 4.0)  # seconds

# Prompt wait phase
DEFAULT_POLL_INTERVAL = 0.5  # seconds
DEFAULT_PERMISSION_PROMPT_TIMEOUT = 120  # seconds, tool-permission prompts
DEFAULT_DELEGATION_PROMPT_TIMEOUT = 300  # seconds, plan-review and delegation prompts
MAX_PROMPT_TIMEOUT = 300  # seconds, upper bound for any prompt
DEFAULT_MAX_POLL_ERRORS = 10  # consecutive polling failures before giving up

# Delivery acknowledgment bookkeeping
DEFAULT_ACK_EXPIRY = 300  # seconds

# Backend server
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8000
DEFAULT_DB_FILENAME = "relay.db"
DEFAULT_CORS_ORIGINS = "*"

# Config file locations
CONFIG_DIRNAME = ".agent-relay"
CONFIG_FILENAMES = ("relay.jsonc", "relay.json")
