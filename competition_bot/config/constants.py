"""Project-wide constants for the competition trader."""

from __future__ import annotations

BUY = "BUY"
SELL = "SELL"
HOLD = "HOLD"
ACTIONS = (BUY, SELL, HOLD)

DEFAULT_TRADING_PAIRS = ("WETH", "WBTC", "UNI", "LINK", "AAVE")

# Engine behavior
DEFAULT_TICK_SECONDS = 10.0
DEFAULT_DURATION_HOURS = 24.0
DEFAULT_INITIAL_BALANCE = 10_000.0
DEFAULT_HISTORY_SIZE = 100

# Reconciliation
NOISE_FLOOR = 0.1
ACTION_SCORE_THRESHOLD = 0.3
MAX_BASE_CONFIDENCE = 0.95
CONSENSUS_MULTIPLIER = 1.2
MAX_CONSENSUS_CONFIDENCE = 0.98
HOLD_CONFIDENCE = 0.1

RISK_LEVEL_MULTIPLIERS = {
    "LOW": 0.5,
    "MEDIUM": 1.0,
    "HIGH": 1.5,
}

# Risk reporting
VOLATILITY_WINDOW = 20
VOLATILITY_MIN_SAMPLES = 10
PNL_HISTORY_SIZE = 100
TRADING_DAYS_PER_YEAR = 252
HEALTH_CAUTION_RATIO = 0.5
HEALTH_WARNING_RATIO = 0.8

# Execution
DEFAULT_SUBMIT_TIMEOUT_SECONDS = 5.0
DEFAULT_MAX_SUBMIT_RETRIES = 2
MIN_TRADE_INTERVAL_SECONDS = 30.0

# Monitoring
METRICS_INTERVAL_SECONDS = 10.0
HEALTH_CHECK_INTERVAL_SECONDS = 30.0
DRAWDOWN_WARNING_PCT = 10.0
DRAWDOWN_CRITICAL_PCT = 15.0
FAILURE_RATE_WARNING_PCT = 20.0
IDLE_ALERT_SECONDS = 30 * 60
MEMORY_WARNING_MB = 512.0
VAR_LOOKBACK_TRADES = 100
VAR_MIN_SAMPLES = 10
VAR_PERCENTILE = 0.05

# Precision controls for paper simulation
QTY_DECIMALS = 6
