"""Engine-wide default constants.

Single source for the numbers shared between settings defaults and the
components that can also be constructed without settings (tests, CLI).
"""

from __future__ import annotations

# Server clock
DEFAULT_RESYNC_INTERVAL_S = 30.0
DEFAULT_CLOCK_CACHE_TTL_S = 30.0
DEFAULT_FALLBACK_HORIZON_S = 300.0
DEFAULT_ROUND_TRIP_TIMEOUT_S = 10.0
SERVER_TIME_COLLECTION = "server_time"

# Playback
DEFAULT_DRIFT_THRESHOLD_S = 0.25
DEFAULT_CORRECTION_INTERVAL_S = 5.0
DEFAULT_PLAY_TIMEOUT_S = 2.0

# Phase
DEFAULT_PHASE_TICK_INTERVAL_S = 1.0
SESSIONS_COLLECTION = "sessions"

# Feed
DEFAULT_FEED_WINDOW_SIZE = 50
DEFAULT_FEED_PAGE_SIZE = 50
MESSAGES_COLLECTION = "messages"
POLLS_COLLECTION = "polls"
VIEWERS_COLLECTION = "viewer_sessions"
DEFAULT_ORDER_FIELD = "created_at"
VIEWER_ORDER_FIELD = "joined_at"

# Retry (exponential backoff)
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY_S = 1.0
DEFAULT_RETRY_MAX_DELAY_S = 30.0
DEFAULT_RETRY_JITTER_S = 0.1
RETRYABLE_STORE_CODES = frozenset({"unavailable", "deadline-exceeded", "resource-exhausted"})
