"""
Operational constants for the settlement engine.

Technical/operational constants used across the application.
Includes lock timeouts, job time limits and settlement defaults.
"""

from decimal import Decimal

# =============================================================================
# LOCK TIMEOUTS (seconds)
# =============================================================================
# Used by distributed_lock.py for Redis locks

# Settlement generation/confirmation (single transaction)
LOCK_TIMEOUT_MEDIUM = 60

# Trigger sweeps (scan all released tranches)
LOCK_TIMEOUT_LONG = 300


# =============================================================================
# BLOCKING TIMEOUTS (seconds)
# =============================================================================
# How long to wait for lock acquisition

BLOCKING_TIMEOUT_DEFAULT = 5.0


# =============================================================================
# DRAMATIQ TIME LIMITS (milliseconds)
# =============================================================================

DRAMATIQ_TIME_LIMIT_SHORT = 60_000  # 1 min
DRAMATIQ_TIME_LIMIT_LONG = 600_000  # 10 min


# =============================================================================
# SETTLEMENT DEFAULTS
# =============================================================================

# Tranche is due when remaining/delivered <= 20%
DEFAULT_SETTLEMENT_TRIGGER_RATIO = Decimal("0.20")

# Tier 2 (FlatSplit): 60% seller, 40% root
DEFAULT_FLAT_SPLIT_SELLER_PCT = Decimal("0.60")

# Tier 3+ (CascadeSplit): each hop keeps 50% of what reaches it
DEFAULT_CASCADE_RETAIN_RATIO = Decimal("0.50")

# Chains longer than this are treated as corrupted data
DEFAULT_MAX_CHAIN_DEPTH = 12

SETTLEMENT_SWEEP_INTERVAL_SECONDS = 300  # 5 minutes
STALE_SETTLEMENT_HOURS = 168  # 7 days
