"""Constants for local-history."""

# Workspace marker directory
LOCAL_HISTORY_DIR = ".local-history"

# Configuration file (inside LOCAL_HISTORY_DIR)
CONFIG_FILE = "config.yaml"

# Environment variable that overrides the store root
STORE_ENV_VAR = "LOCAL_HISTORY_STORE"

# Snapshot layout inside the store root
META_SUFFIX = ".meta"
LOCK_FILE = ".capture.lock"
TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

# Retention defaults
DEFAULT_MAX_HISTORY_ENTRIES = 30
DEFAULT_MAX_AGE_DAYS = 7
DEFAULT_DEBOUNCE_SECONDS = 1.0

DEFAULT_EXCLUDED_PATTERNS = [
    "**/.git/**",
    "**/node_modules/**",
    "**/.history/**",
]

# Version
HISTORY_VERSION = "0.1.0"
