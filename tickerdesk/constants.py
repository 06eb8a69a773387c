"""Constants used across tickerdesk.

This module defines shared constants to ensure consistency.
"""

# Sentinel tickers for sessions not bound to a traded symbol
PLACEHOLDER_TICKER = "PLACEHOLDER"
PRIVATE_DATA_TICKER = "PRIVATE_DATA"
SENTINEL_TICKERS = frozenset({PLACEHOLDER_TICKER, PRIVATE_DATA_TICKER})

# Feature namespaces every session carries in its nested data tree
SESSION_NAMESPACES = ("chat", "filingView", "news", "charts", "equity", "private")

# Persisted state branches (everything else is process-lifetime only)
PERSISTED_BRANCHES = ("auth", "sessions", "widgets", "portfolio")

# Network
DEFAULT_API_TIMEOUT_S = 30.0
AUTH_REFRESH_PATH = "/auth/refresh"
AUTH_LOGOUT_PATH = "/auth/logout"
AUTH_ME_PATH = "/auth/me"
AUTH_LOGIN_PATH = "/auth/login"

# Env
ENV_API_URL = "TICKERDESK_API_URL"
ENV_CONFIG_PATH = "TICKERDESK_CONFIG"
ENV_LOG_LEVEL = "TICKERDESK_LOG_LEVEL"
