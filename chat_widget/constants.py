"""Application-wide constants.

This module centralizes all magic numbers and configuration constants
to ensure a single source of truth and easier maintenance.

Constants are organized by category. Values mirror the behaviour of the
embeddable browser widget so that ids and timings line up with it.
"""

# =============================================================================
# Visit Tracking
# =============================================================================

# Gap after which a visitor counts as returning (seconds) - 1 hour
RETURN_VISIT_WINDOW_SECONDS = 60 * 60

# Prefix for anonymous visitor ids derived from the browser fingerprint
ANONYMOUS_ID_PREFIX = "anon_"

# Separator used when joining fingerprint signals before hashing
FINGERPRINT_SEPARATOR = "-"

# =============================================================================
# Popup Triggers
# =============================================================================

# Delay before first/return visit popups and redisplays (seconds)
POPUP_DISPLAY_DELAY_SECONDS = 1.5

# How long a displayed countdown popup stays active (seconds) - 1 hour
POPUP_EXPIRY_SECONDS = 60 * 60

# Fallback trigger value when a popup omits triggerValue
DEFAULT_TRIGGER_VALUE = 3

# Pointer must leave the viewport above this y coordinate for exit intent (px)
EXIT_INTENT_THRESHOLD_PX = 10

# =============================================================================
# Countdown
# =============================================================================

# Countdown refresh interval (seconds)
COUNTDOWN_TICK_SECONDS = 1.0

# Remaining time below which a countdown is rendered as urgent (seconds)
COUNTDOWN_URGENT_THRESHOLD_SECONDS = 5 * 60

# =============================================================================
# Legacy Discounts (configs without a popups list)
# =============================================================================

# Expiry for legacy first-time / return-user discount offers (seconds)
LEGACY_DISCOUNT_EXPIRY_SECONDS = 10 * 60

# =============================================================================
# Device Classification
# =============================================================================

# Viewport widths (px) at or below which a device is mobile / tablet
MOBILE_MAX_WIDTH_PX = 768
TABLET_MAX_WIDTH_PX = 1024

# =============================================================================
# Storage
# =============================================================================

# Prefix shared by every persisted widget key
DEFAULT_STORAGE_KEY_PREFIX = "orchis_"

# Key stems of the legacy discount offers, as the browser widget writes them
LEGACY_DISCOUNT_KEY_STEMS = {
    "first_time": "first_discount",
    "return_user": "discount",
}

# Default location of the JSON file store used by the CLI
DEFAULT_STORAGE_PATH = ".widget_storage.json"

# Supabase table backing the hosted key-value store
SUPABASE_STORAGE_TABLE = "widget_storage"

# =============================================================================
# Remote Agent Configuration
# =============================================================================

# Endpoint serving the public agent configuration for the widget
DEFAULT_AGENT_CONFIG_URL = (
    "https://us-central1-candelaai.cloudfunctions.net/getAgentConfig"
)

# Timeout for the agent configuration fetch (seconds)
AGENT_CONFIG_TIMEOUT_SECONDS = 10.0
