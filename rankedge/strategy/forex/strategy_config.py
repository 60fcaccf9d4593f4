"""
strategy_config.py — Single Source of Truth for the Rank Expectancy Backtester
==============================================================================

THIS IS THE ONLY PLACE THESE CONSTANTS ARE DEFINED.

The candle adapter, the ranker, the gate evaluator, the combination simulator
and the aggregator all import this module BY REFERENCE:

    from rankedge.strategy.forex import strategy_config as _cfg
    lookback = _cfg.GATE_LOOKBACK

so that apply_levers() can patch a value at runtime and every stage sees it
without a reload.

LEVER SYSTEM
============
Every constant is a named lever. To run a one-off experiment without editing
source code, use the CLI --lever flag:

    python3 -m backtesting.rank_expectancy_backtest --env practice \\
        --lever GATE_LOOKBACK=30 \\
        --lever FLOW_LOOKBACK=10
"""
import sys as _sys
from itertools import combinations as _combinations

# ── Engine identity ────────────────────────────────────────────────────────
ENGINE_VERSION: str = "2.0"

# ── Currency universe ──────────────────────────────────────────────────────
# Order matters: the earlier currency is BASE in every cross, which matches
# OANDA's instrument naming (EUR_USD, GBP_JPY, CAD_CHF, CHF_JPY ...).
ALL_CURRENCIES: tuple = ("EUR", "GBP", "AUD", "NZD", "USD", "CAD", "CHF", "JPY")

# Crosses the data provider actually serves. A cross missing from this set is
# treated as ABSENT for every snapshot, never as a zero return.
AVAILABLE_INSTRUMENTS: frozenset = frozenset({
    "EUR_USD", "EUR_GBP", "EUR_AUD", "EUR_NZD", "EUR_CAD", "EUR_CHF", "EUR_JPY",
    "GBP_USD", "GBP_AUD", "GBP_NZD", "GBP_CAD", "GBP_CHF", "GBP_JPY",
    "AUD_USD", "AUD_NZD", "AUD_CAD", "AUD_CHF", "AUD_JPY",
    "NZD_USD", "NZD_CAD", "NZD_CHF", "NZD_JPY",
    "USD_CAD", "USD_CHF", "USD_JPY",
    "CAD_CHF", "CAD_JPY",
    "CHF_JPY",
})

# ── Candle source ──────────────────────────────────────────────────────────
GRANULARITY: str        = "M30"   # OANDA granularity code
PRICE_TYPE: str         = "M"     # mid prices
MAX_CANDLE_COUNT: int   = 5000    # OANDA hard cap per request
DEFAULT_CANDLE_COUNT: int = 5000
FETCH_TIMEOUT_SECS: int = 30      # per-instrument request timeout
FETCH_MAX_WORKERS: int  = 28      # one worker per cross at most

# ── Alignment ──────────────────────────────────────────────────────────────
# Fewer distinct timestamps than this across all instruments = no backtest.
MIN_TIMESTAMPS: int = 50

# ── Ranker ─────────────────────────────────────────────────────────────────
# Window (candles) for the per-instrument average % return ("flow").
FLOW_LOOKBACK: int = 20

# ── Gates ──────────────────────────────────────────────────────────────────
# Structural breakout ("wall break") and trend-vector window, in completed
# candles strictly before the current one.
GATE_LOOKBACK: int = 20
# Regression needs at least this many points or the slope is forced to 0.
MIN_REGRESSION_POINTS: int = 5

# ── Pip maths ──────────────────────────────────────────────────────────────
PIP_MULTIPLIER_JPY: float   = 100.0
PIP_MULTIPLIER_OTHER: float = 10_000.0

# ── Simulated account ──────────────────────────────────────────────────────
STARTING_EQUITY: float = 1_000.0
PIP_VALUE_USD: float   = 0.20     # 2,000 units ≈ $0.20/pip on a $1K account

# Added to every realised trade (in pips) at close. 0 = no transaction cost.
EXIT_ADJUSTMENT_PIPS: float = 0.0

# ── Reporting ──────────────────────────────────────────────────────────────
PF_SENTINEL: float    = 999.0     # profit factor when there are no losers
MAX_CURVE_POINTS: int = 500       # equity-curve downsample cap

# ── Session buckets (UTC hour ranges, [start, end)) ────────────────────────
# Any hour not covered falls into SESSION_DEFAULT (late NY wraps to Asia).
SESSION_WINDOWS_UTC: tuple = (
    ("ASIA",      0,  7),
    ("LONDON",    7, 12),
    ("NEW_YORK", 12, 17),
    ("NY_CLOSE", 17, 21),
)
SESSION_DEFAULT: str = "ASIA"


# ── Derived helpers ────────────────────────────────────────────────────────

def instrument_name(base: str, quote: str) -> str:
    return f"{base}_{quote}"


def all_crosses(currencies=None) -> list:
    """
    Every (base, quote, instrument) combination of the currency universe,
    base = the currency that comes first in the universe ordering.
    """
    currencies = tuple(currencies or ALL_CURRENCIES)
    return [
        (base, quote, instrument_name(base, quote))
        for base, quote in _combinations(currencies, 2)
    ]


def available_crosses(currencies=None, available=None) -> list:
    """all_crosses() filtered to the instruments the provider serves."""
    available = AVAILABLE_INSTRUMENTS if available is None else available
    return [c for c in all_crosses(currencies) if c[2] in available]


def rank_combinations(n_currencies: int) -> list:
    """All (strong_rank, weak_rank) pairs with strong < weak. 28 for 8 currencies."""
    return [(s, w) for s in range(1, n_currencies) for w in range(s + 1, n_currencies + 1)]


def flagship_combo(n_currencies: int) -> tuple:
    """Strongest vs weakest: 1v8 on the full universe."""
    return (1, n_currencies)


def neutral_combo(n_currencies: int) -> tuple:
    """Middle pair used as the rank-agnostic baseline: 4v5 on the full universe."""
    mid = max(n_currencies // 2, 1)
    return (mid, min(mid + 1, n_currencies))


def key_combos(n_currencies: int) -> list:
    """Mirror-image combos whose equity curves are reported: 1v8, 2v7, 3v6, 4v5."""
    return [(k, n_currencies + 1 - k) for k in range(1, n_currencies // 2 + 1)]


def combo_key(strong_rank: int, weak_rank: int) -> str:
    return f"{strong_rank}v{weak_rank}"


# ── Lever system ───────────────────────────────────────────────────────────

def apply_levers(overrides: dict) -> dict:
    """
    Patch module-level constants at runtime.

    Type coercion is automatic based on the existing type of each constant.
    Booleans accept: True/False/true/false/1/0/yes/no.
    Tuples, sets and other structured constants are not levers.

    Returns the dict of applied overrides (useful for logging).
    Raises ValueError for unknown or non-overridable keys.

    Example:
        apply_levers({"GATE_LOOKBACK": 30, "PIP_VALUE_USD": "0.1"})
    """
    m = _sys.modules[__name__]
    applied = {}
    _missing = object()
    for key, raw_val in overrides.items():
        existing = getattr(m, key, _missing)
        if existing is _missing or key.startswith("_") or not key.isupper():
            raise ValueError(f"apply_levers: unknown lever '{key}'")
        if callable(existing):
            raise ValueError(f"apply_levers: '{key}' is a function, not a lever")
        if isinstance(existing, bool):
            if isinstance(raw_val, str):
                val = raw_val.strip().lower() not in ("false", "0", "no", "off")
            else:
                val = bool(raw_val)
        elif isinstance(existing, float):
            val = float(raw_val)
        elif isinstance(existing, int):
            val = int(raw_val)
        elif isinstance(existing, str):
            val = str(raw_val)
        else:
            raise ValueError(f"apply_levers: '{key}' is not a scalar lever")
        setattr(m, key, val)
        applied[key] = val
    return applied


def parse_lever_args(pairs: list) -> dict:
    """['GATE_LOOKBACK=30', 'PF_SENTINEL=500'] → {'GATE_LOOKBACK': '30', ...}"""
    out = {}
    for item in pairs or []:
        if "=" not in item:
            raise ValueError(f"--lever expects KEY=VALUE, got '{item}'")
        key, val = item.split("=", 1)
        out[key.strip()] = val.strip()
    return out
