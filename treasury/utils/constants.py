"""Shared constants."""

LAMPORTS_PER_SOL = 1_000_000_000

# Wrapped SOL mint, used as the swap input for buybacks
SOL_MINT = "So11111111111111111111111111111111111111112"

# Well-known incinerator address; tokens sent here are permanently locked
INCINERATOR_ADDRESS = "1nc1nerator11111111111111111111111111111111"

# Runway reported when the configured daily burn is zero
INFINITE_RUNWAY_DAYS = 999.0

# Persistence keys
STATE_KEY = "treasury_state"
METRICS_KEY = "metrics"

ACTIVITY_SOURCE = "sustainability-daemon"

# Activity log entry types
DAEMON_START = "DAEMON_START"
DAEMON_STOP = "DAEMON_STOP"
TICK_SKIPPED = "TICK_SKIPPED"
TICK_SKIPPED_OVERLAP = "TICK_SKIPPED_OVERLAP"
MODE_CHANGE = "MODE_CHANGE"
BUYBACK_DECISION = "BUYBACK_DECISION"
BUYBACK_DRY_RUN = "BUYBACK_DRY_RUN"
BUYBACK_START = "BUYBACK_START"
BUYBACK_SUCCESS = "BUYBACK_SUCCESS"
BUYBACK_FAILED = "BUYBACK_FAILED"
BURN_DECISION = "BURN_DECISION"
BURN_DRY_RUN = "BURN_DRY_RUN"
BURN_START = "BURN_START"
BURN_SUCCESS = "BURN_SUCCESS"
BURN_FAILED = "BURN_FAILED"
ERROR = "ERROR"
STATE_RESET = "STATE_RESET"
