"""
Protocol constants for the vote-escrow split model.

All amounts are integers in base units (18 decimals), the way the on-chain
contracts hold them. Downstream tooling must mirror the weekly schedule below
exactly, otherwise it will disagree with the model about window boundaries.
"""

# Time
HOUR = 60 * 60
DAY = 24 * HOUR
WEEK = 7 * DAY

# Fixed weekly schedule, as offsets from the start of an epoch
ROLLOVER_BUFFER = 1 * HOUR
DEPOSIT_WINDOW = (ROLLOVER_BUFFER, 6 * DAY)
VOTING_WINDOW = (ROLLOVER_BUFFER, 6 * DAY)
EXECUTION_WINDOW = (6 * DAY, 6 * DAY + 12 * HOUR)
SNAPSHOT_WINDOW = (6 * DAY + 12 * HOUR, WEEK)
# Snapshots of epoch e are claimable in epoch e + 1 until this offset
BRIBE_CLAIM_DEADLINE = 6 * DAY

# Precision
DECIMAL_PRECISION = 10 ** 18
SCALE = 10 ** 18  # reward index scale
BPS = 10_000

# Votes
VOTE_UNIT = DECIMAL_PRECISION  # votes must be whole tokens
MAX_POOLS = 30  # distinct pools that can receive votes in one epoch
DEFAULT_ROUTER_MAX_POOLS = 15

# Deposit split of principal, in basis points
CAPITAL_DEPOSITOR_BPS = 9_000
CAPITAL_TREASURY_BPS = 100
CAPITAL_RESERVE_BPS = 900
VOTING_DEPOSITOR_BPS = 9_900
VOTING_TREASURY_BPS = 100

# Liquidation thresholds, in basis points of total supply
LIQUIDATION_CLOCK_THRESHOLD_BPS = 2_500
LIQUIDATION_CVOTE_THRESHOLD_BPS = 7_500
LIQUIDATION_VCONFIRM_THRESHOLD_BPS = 5_000
LIQUIDATION_VOTE_WINDOW = 90 * DAY
LIQUIDATION_CLAIM_WINDOW = 7 * DAY

# Emissions
EMISSION_PERIOD = WEEK
DEFAULT_EMISSION_RATE = DECIMAL_PRECISION // 50  # 2% logistic growth per period
DEFAULT_EMISSION_STAKER_SHARE_BPS = 3_300
DEFAULT_MAX_CATCHUP_STEPS = 8

# Stream names
FEE_STREAM = "fee"
EMISSION_STREAM = "emission"
REBASE_STREAM = "rebase"
STREAMS = (FEE_STREAM, EMISSION_STREAM, REBASE_STREAM)
