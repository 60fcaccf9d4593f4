"""
Time-Series Aligner

Merges per-instrument candle DataFrames onto one global, sorted timestamp
axis and builds O(1) timestamp → candle-position lookups per instrument.

No instrument is required to have a candle at every timestamp: lookups on a
missing (instrument, timestamp) return None and the caller treats the
instrument as absent for that snapshot.

Usage:
    series = align(pair_candles)
    series.require_min_timestamps()          # InsufficientDataError if < 50
    i = series.position_of("EUR_USD", ts)   # None when no candle at ts
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from rankedge.backtest.errors import InsufficientDataError
from rankedge.strategy.forex import strategy_config as _cfg

logger = logging.getLogger(__name__)


@dataclass
class InstrumentSeries:
    """Column arrays for one instrument plus its timestamp → position index."""
    instrument: str
    times:  List[pd.Timestamp]
    open:   np.ndarray
    high:   np.ndarray
    low:    np.ndarray
    close:  np.ndarray
    volume: np.ndarray
    index:  Dict[pd.Timestamp, int] = field(default_factory=dict)

    @classmethod
    def from_frame(cls, instrument: str, df: pd.DataFrame) -> "InstrumentSeries":
        df = df.sort_index()
        df = df[~df.index.duplicated(keep="last")]
        times = list(df.index)
        volume = df["volume"].to_numpy(dtype=float) if "volume" in df else np.zeros(len(df))
        return cls(
            instrument = instrument,
            times      = times,
            open       = df["open"].to_numpy(dtype=float),
            high       = df["high"].to_numpy(dtype=float),
            low        = df["low"].to_numpy(dtype=float),
            close      = df["close"].to_numpy(dtype=float),
            volume     = volume,
            index      = {t: i for i, t in enumerate(times)},
        )

    def __len__(self) -> int:
        return len(self.times)


@dataclass
class AlignedSeries:
    """Global timestamp axis + per-instrument lookups. Read-only after align()."""
    timestamps:  List[pd.Timestamp]
    instruments: Dict[str, InstrumentSeries]

    def __len__(self) -> int:
        return len(self.timestamps)

    def has(self, instrument: str, ts: pd.Timestamp) -> bool:
        s = self.instruments.get(instrument)
        return s is not None and ts in s.index

    def position_of(self, instrument: str, ts: pd.Timestamp) -> Optional[int]:
        s = self.instruments.get(instrument)
        if s is None:
            return None
        return s.index.get(ts)

    def candle_at(self, instrument: str, ts: pd.Timestamp) -> Optional[dict]:
        i = self.position_of(instrument, ts)
        if i is None:
            return None
        s = self.instruments[instrument]
        return {
            "time":   s.times[i],
            "open":   float(s.open[i]),
            "high":   float(s.high[i]),
            "low":    float(s.low[i]),
            "close":  float(s.close[i]),
            "volume": float(s.volume[i]),
        }

    def close_at(self, instrument: str, ts: pd.Timestamp) -> Optional[float]:
        i = self.position_of(instrument, ts)
        if i is None:
            return None
        return float(self.instruments[instrument].close[i])

    def last_close_at_or_before(self, instrument: str, ts: pd.Timestamp) -> Optional[float]:
        """Close of the latest candle with time ≤ ts (None if the instrument starts later)."""
        s = self.instruments.get(instrument)
        if s is None or not s.times:
            return None
        i = s.index.get(ts)
        if i is None:
            i = int(pd.DatetimeIndex(s.times).searchsorted(ts, side="right")) - 1
        if i < 0:
            return None
        return float(s.close[i])

    def window_before(self, instrument: str, ts: pd.Timestamp, n: int) -> Optional[pd.DataFrame]:
        """
        The n candles strictly before the candle at ts (the forming candle is
        excluded). None when ts has no candle or fewer than n precede it.
        """
        i = self.position_of(instrument, ts)
        if i is None or n <= 0 or i < n:
            return None
        s = self.instruments[instrument]
        return pd.DataFrame({
            "open":   s.open[i - n:i],
            "high":   s.high[i - n:i],
            "low":    s.low[i - n:i],
            "close":  s.close[i - n:i],
            "volume": s.volume[i - n:i],
        }, index=pd.DatetimeIndex(s.times[i - n:i], name="time"))

    def require_min_timestamps(self, minimum: Optional[int] = None) -> None:
        minimum = _cfg.MIN_TIMESTAMPS if minimum is None else minimum
        if len(self.timestamps) < minimum:
            raise InsufficientDataError(
                f"Insufficient data for backtest: {len(self.timestamps)} timestamps "
                f"across {len(self.instruments)} instruments (need ≥ {minimum})"
            )

    @property
    def date_range(self) -> dict:
        if not self.timestamps:
            return {"start": None, "end": None}
        return {"start": self.timestamps[0].isoformat(), "end": self.timestamps[-1].isoformat()}


def align(pair_candles: Dict[str, pd.DataFrame]) -> AlignedSeries:
    """Build the global sorted timestamp axis and per-instrument indexes."""
    instruments: Dict[str, InstrumentSeries] = {}
    all_times = set()
    for inst, df in pair_candles.items():
        if df is None or df.empty:
            continue
        s = InstrumentSeries.from_frame(inst, df)
        instruments[inst] = s
        all_times.update(s.times)

    timestamps = sorted(all_times)
    logger.info(f"[BACKTEST] Aligned {len(instruments)} instruments onto {len(timestamps)} timestamps")
    return AlignedSeries(timestamps=timestamps, instruments=instruments)
