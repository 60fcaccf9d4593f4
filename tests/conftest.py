"""
Shared fixtures: a synthetic but internally consistent 28-cross dataset.

Each currency follows its own seeded log random walk; every cross is priced as
exp(v_base − v_quote) × level, so the cross rates agree with each other the way
real ones do.  A couple of crosses have holes so alignment has work to do.
"""
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from rankedge.strategy.forex import strategy_config as _cfg


def build_universe_candles(n: int = 160, seed: int = 7) -> dict:
    rng   = np.random.default_rng(seed)
    times = pd.date_range("2024-03-04 00:00", periods=n, freq="30min")
    walks = {
        cur: np.cumsum(rng.normal(0.0, 0.0008, n) + rng.normal(0.0, 0.0002))
        for cur in _cfg.ALL_CURRENCIES
    }

    out = {}
    for base, quote, inst in _cfg.available_crosses():
        level  = 150.0 if quote == "JPY" else 1.2
        closes = level * np.exp(walks[base] - walks[quote])
        opens  = np.concatenate([[closes[0]], closes[:-1]])
        wick   = np.abs(rng.normal(0.0, 0.0003, n)) * level
        df = pd.DataFrame({
            "open":   opens,
            "high":   np.maximum(opens, closes) + wick,
            "low":    np.minimum(opens, closes) - wick,
            "close":  closes,
            "volume": rng.integers(50, 500, n),
        }, index=pd.DatetimeIndex(times, name="time"))
        if inst in ("NZD_CHF", "CAD_JPY"):
            df = df[np.arange(n) % 9 != 4]     # irregular coverage
        out[inst] = df
    return out


@pytest.fixture(scope="session")
def universe_candles() -> dict:
    return build_universe_candles()
