# checkcx/core/constants.py

# History
MAX_POINTS_PER_PROVIDER = 60
DEFAULT_RETENTION_DAYS = 30
MIN_RETENTION_DAYS = 7
MAX_RETENTION_DAYS = 365

# Trend downsampling
TREND_POINT_LIMIT = 500
PERIOD_INTERVALS = {
    "7d": "7 days",
    "15d": "15 days",
    "30d": "30 days",
}
DEFAULT_TREND_PERIOD = "7d"

# Supabase tables and server-side functions
TABLE_CHECK_CONFIGS = "check_configs"
TABLE_CHECK_HISTORY = "check_history"
TABLE_GROUP_INFO = "group_info"
VIEW_AVAILABILITY_STATS = "availability_stats"

RPC_RECENT_HISTORY = "get_recent_check_history"
RPC_PRUNE_HISTORY = "prune_check_history"
RPC_HISTORY_BY_TIME = "get_check_history_by_time"

# Probes
DEGRADED_THRESHOLD_MS = 6_000
MESSAGE_PREVIEW_LENGTH = 100
MAX_ERROR_MESSAGE_LENGTH = 280
REQUEST_TIMED_OUT = "request timed out"
UNKNOWN_ERROR = "unknown error"

DEFAULT_ENDPOINTS = {
    "anthropic": "https://api.anthropic.com/v1/messages",
    "openai": "https://api.openai.com/v1/chat/completions",
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions",
}

UNGROUPED_KEY = "__ungrouped__"
UNGROUPED_DISPLAY_NAME = "Ungrouped"
