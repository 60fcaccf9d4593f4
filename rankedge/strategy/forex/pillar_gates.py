"""
Pillar Gates — confirmation filters for a rank-divergence trade
================================================================
Three independent checks, each answering "does the evidence support this
directional trade on this instrument at this candle":

  G1  Rank divergence   — satisfied by construction once a (strong, weak)
                          rank combination is selected. Carried as True so
                          edge attribution can treat all three alike.
  G2  Wall break        — current close beyond the extreme of the previous
                          GATE_LOOKBACK completed candles:
                            long:  close > max(high)
                            short: close < min(low)
  G3  Trend vector      — OLS slope of close vs index 0..n-1 over the same
                          window:  long needs slope > 0, short slope < 0.

The window never includes the current (forming) candle.

Degenerate inputs never raise: short history, fewer than
MIN_REGRESSION_POINTS points or a zero regression denominator give slope 0
and a CLOSED gate. With insufficient history G2 and G3 are both closed, and
that depends on history length only.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

from rankedge.backtest.alignment import AlignedSeries, InstrumentSeries
from rankedge.strategy.forex import strategy_config as _cfg

LONG  = "long"
SHORT = "short"


@dataclass(frozen=True)
class GateState:
    """Gate outcome for one (instrument, timestamp, direction)."""
    rank_gate:     bool
    breakout_gate: bool
    vector_gate:   bool
    slope:         float

    @property
    def all_open(self) -> bool:
        return self.rank_gate and self.breakout_gate and self.vector_gate


CLOSED = GateState(rank_gate=True, breakout_gate=False, vector_gate=False, slope=0.0)


# ─────────────────────────────────────────────────────────────────────────────
# G2: wall break
# ─────────────────────────────────────────────────────────────────────────────

def check_wall_break(
    series: InstrumentSeries,
    i: int,
    direction: str,
    lookback: Optional[int] = None,
) -> bool:
    """
    True if the close at position i breaks the previous `lookback` candles'
    highest high (long) / lowest low (short). Needs i ≥ lookback + 1.
    """
    lookback = _cfg.GATE_LOOKBACK if lookback is None else lookback
    if lookback <= 0 or i < lookback + 1 or i >= len(series):
        return False
    current_close = series.close[i]
    if direction == LONG:
        return bool(current_close > np.max(series.high[i - lookback:i]))
    return bool(current_close < np.min(series.low[i - lookback:i]))


# ─────────────────────────────────────────────────────────────────────────────
# G3: trend vector
# ─────────────────────────────────────────────────────────────────────────────

def linreg_slope(
    series: InstrumentSeries,
    i: int,
    lookback: Optional[int] = None,
) -> float:
    """OLS slope of close over positions i-lookback .. i-1 (0.0 when degenerate)."""
    lookback = _cfg.GATE_LOOKBACK if lookback is None else lookback
    if lookback <= 0 or i < lookback or i >= len(series):
        return 0.0
    y = series.close[i - lookback:i]
    n = len(y)
    if n < _cfg.MIN_REGRESSION_POINTS:
        return 0.0
    x = np.arange(n, dtype=float)
    sum_x  = x.sum()
    sum_y  = y.sum()
    sum_xy = (x * y).sum()
    sum_x2 = (x * x).sum()
    denom = n * sum_x2 - sum_x * sum_x
    if denom == 0:
        return 0.0
    return float((n * sum_xy - sum_x * sum_y) / denom)


def check_trend_vector(slope: float, direction: str) -> bool:
    if direction == LONG:
        return slope > 0
    return slope < 0


# ─────────────────────────────────────────────────────────────────────────────
# Combined
# ─────────────────────────────────────────────────────────────────────────────

def evaluate_gates(
    aligned: AlignedSeries,
    instrument: str,
    ts: pd.Timestamp,
    direction: str,
    lookback: Optional[int] = None,
) -> GateState:
    """All three gates for one instrument/timestamp/direction. Always evaluated."""
    i = aligned.position_of(instrument, ts)
    if i is None:
        return CLOSED
    series = aligned.instruments[instrument]
    slope = linreg_slope(series, i, lookback)
    return GateState(
        rank_gate     = True,
        breakout_gate = check_wall_break(series, i, direction, lookback),
        vector_gate   = check_trend_vector(slope, direction),
        slope         = slope,
    )
