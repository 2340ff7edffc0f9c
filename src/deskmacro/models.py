"""Centralized defaults for macro execution, recording and reloading."""

# Environment
MACROS_PATH_ENV = "DESKMACRO_MACROS_PATH"
PROJECT_DIR_NAME = ".deskmacro"

# Execution timeouts (seconds)
DEFAULT_MACRO_TIMEOUT = 60
DEFAULT_STEP_TIMEOUT = 5
DEFAULT_RETRY_INTERVAL = 0.5
DEFAULT_LAUNCH_TIMEOUT = 30
DEFAULT_WINDOW_POLL_INTERVAL = 0.5

# Step defaults
DEFAULT_WAIT_SECONDS = 1.0
DEFAULT_SNAPSHOT_DEPTH = 3

# Recorder thresholds
TYPING_COALESCE_MS = 300
SEQUENTIAL_CHORD_MS = 500
WAIT_DETECTION_THRESHOLD_SEC = 1.5
MAX_RECORDED_WAIT_SEC = 10.0

# Builder
MIN_BUILDER_WAIT_SEC = 0.5
DEFAULT_RECORDING_FIND_TIMEOUT = 10

# Registry
MACRO_RELOAD_DEBOUNCE_MS = 500
KNOWLEDGE_BASE_KIND = "knowledge-base"

# Element cache
ELEMENT_CACHE_CAPACITY = 500
