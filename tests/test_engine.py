"""
End-to-end tests for run_rank_backtest() / fetch_and_run().

Covers:
  - Three-currency scenario with a known winner (1v3) and loser (2v3)
  - Flagship beats a pair whose relative strength keeps flipping
  - Insufficient data → InsufficientDataError
  - Instrument too short to open gates never produces gated trades
  - 28 combinations, key equity curves, JSON-safe payload on the full universe
  - Same candles in → identical combination results out
  - fetch_and_run(): bad environment, empty provider
"""
import sys, os, json
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from unittest.mock import MagicMock

import numpy as np
import pandas as pd
import pytest

from rankedge.backtest.engine import fetch_and_run, run_rank_backtest
from rankedge.backtest.errors import (
    ConfigurationError, InsufficientDataError, UpstreamError,
)
from rankedge.strategy.forex import strategy_config as _cfg

ABC = ("A", "B", "C")
ABC_PAIRS = {"A_B", "A_C", "B_C"}


def make_const_return(n: int, ret_pct: float, start: float = 1.0,
                      t0: str = "2024-01-01 00:00") -> pd.DataFrame:
    closes = start * (1 + ret_pct / 100.0) ** np.arange(1, n + 1)
    opens  = closes / (1 + ret_pct / 100.0)
    return pd.DataFrame({
        "open":   opens,
        "high":   np.maximum(opens, closes),
        "low":    np.minimum(opens, closes),
        "close":  closes,
        "volume": np.full(n, 10),
    }, index=pd.date_range(t0, periods=n, freq="30min"))


def make_returns(rets_pct, start: float = 1.0,
                 t0: str = "2024-01-01 00:00") -> pd.DataFrame:
    """One candle per return; each opens at the previous close."""
    rets_pct = np.asarray(rets_pct, dtype=float)
    closes = start * np.cumprod(1 + rets_pct / 100.0)
    opens  = np.concatenate([[start], closes[:-1]])
    return pd.DataFrame({
        "open":   opens,
        "high":   np.maximum(opens, closes),
        "low":    np.minimum(opens, closes),
        "close":  closes,
        "volume": np.full(len(closes), 10),
    }, index=pd.date_range(t0, periods=len(closes), freq="30min"))


def abc_candles(n: int = 60) -> dict:
    return {
        "A_B": make_const_return(n, 0.10),
        "A_C": make_const_return(n, 0.30),
        "B_C": make_const_return(n, -0.05),
    }


# ── Three-currency scenario ─────────────────────────────────────────────────

class TestThreeCurrencyScenario:
    def test_flagship_beats_middle(self):
        r = run_rank_backtest(abc_candles(), currencies=ABC, available=ABC_PAIRS)
        assert len(r.combo_results) == 3
        flagship = r.combo(1, 3)
        loser = r.combo(2, 3)
        assert flagship.trades == 1 and flagship.win_rate == 100.0
        assert loser.trades == 1 and loser.win_rate == 0.0
        assert flagship.win_rate > loser.win_rate
        assert r.best_combo.key == "1v3"

    def test_flagship_beats_shuffled_pair(self):
        # B_C is seeded noise centred where B and C score equal, so the two
        # keep trading places while A stays strongest throughout.
        n = 400
        rng = np.random.default_rng(11)
        candles = {
            "A_B": make_const_return(n, 0.10),
            "A_C": make_const_return(n, 0.30),
            "B_C": make_returns(rng.normal(-0.10, 0.5, n)),
        }
        r = run_rank_backtest(candles, currencies=ABC, available=ABC_PAIRS)

        shuffled = r.trades["2v3"]
        assert len(shuffled) >= 5
        assert {t.direction for t in shuffled} == {"long", "short"}
        assert {t.instrument for t in r.trades["1v3"]} == {"A_B", "A_C"}

        flagship = r.combo(1, 3)
        assert flagship.win_rate == 100.0
        assert flagship.win_rate > r.combo(2, 3).win_rate

    def test_trade_lists_and_sessions(self):
        r = run_rank_backtest(abc_candles(), currencies=ABC, available=ABC_PAIRS)
        (t,) = r.trades["1v3"]
        assert t.instrument == "A_C" and t.direction == "long"
        # first flow exists at position 20 → 10:00 UTC
        assert t.entry_time == pd.Timestamp("2024-01-01 10:00")
        by = {s.session: s for s in r.session_stats}
        assert by["LONDON"].trades == 1
        assert sum(s.trades for s in r.session_stats) == 1

    def test_summary_fields(self):
        r = run_rank_backtest(abc_candles(), currencies=ABC, available=ABC_PAIRS)
        assert r.total_snapshots == 40
        assert r.pairs_loaded == 3
        assert r.candles_per_pair == 60
        assert set(r.equity_curves) == {"1v3"}
        assert r.date_range["start"] == "2024-01-01T00:00:00"
        assert r.version == _cfg.ENGINE_VERSION


# ── Failure modes ───────────────────────────────────────────────────────────

class TestInsufficientData:
    def test_thirty_timestamps_rejected(self):
        with pytest.raises(InsufficientDataError) as exc:
            run_rank_backtest(abc_candles(30), currencies=ABC, available=ABC_PAIRS)
        assert exc.value.stage == "alignment"

    def test_empty_frames_ignored(self):
        with pytest.raises(InsufficientDataError):
            run_rank_backtest({"EUR_USD": pd.DataFrame()})


class TestShortInstrument:
    def test_fifteen_candle_cross_never_gated(self):
        candles = abc_candles(60)
        candles["A_C"] = candles["A_C"].iloc[-15:]
        r = run_rank_backtest(candles, currencies=ABC, available=ABC_PAIRS)
        for t in r.trades["1v3"]:
            if t.instrument == "A_C":
                assert not t.gated
        assert r.combo(1, 3).gated_trades == 0


# ── Full universe ───────────────────────────────────────────────────────────

class TestFullUniverse:
    def test_shape(self, universe_candles):
        r = run_rank_backtest(universe_candles)
        assert len(r.combo_results) == 28
        assert [c.key for c in r.combo_results][:3] == ["1v2", "1v3", "1v4"]
        assert set(r.equity_curves) == {"1v8", "2v7", "3v6", "4v5"}
        assert r.pairs_loaded == 28
        assert r.total_snapshots == 140
        assert r.candles_per_pair == 160
        assert r.best_combo in r.combo_results
        assert len(r.drawdown_curve) == len(r.equity_curves["1v8"])
        assert all(p["drawdown"] <= 0 for p in r.drawdown_curve)

    def test_sessions_partition_flagship(self, universe_candles):
        r = run_rank_backtest(universe_candles)
        assert [s.session for s in r.session_stats] == ["ASIA", "LONDON", "NEW_YORK", "NY_CLOSE"]
        assert sum(s.trades for s in r.session_stats) == r.combo(1, 8).trades

    def test_payload_is_strict_json(self, universe_candles):
        payload = run_rank_backtest(universe_candles).to_dict()
        text = json.dumps(payload, allow_nan=False)
        assert payload["success"] is True
        assert len(payload["combo_results"]) == 28
        assert "candles_per_pair" in payload and "candlesPerPair" not in payload
        assert "Infinity" not in text
        for pts in payload["equity_curves"].values():
            assert len(pts) <= _cfg.MAX_CURVE_POINTS

    def test_repeat_runs_identical(self, universe_candles):
        a = run_rank_backtest(universe_candles)
        b = run_rank_backtest(universe_candles)
        assert [c.to_dict() for c in a.combo_results] == [c.to_dict() for c in b.combo_results]
        assert a.trades == b.trades

    def test_gated_is_subset(self, universe_candles):
        r = run_rank_backtest(universe_candles)
        for c in r.combo_results:
            assert 0 <= c.gated_trades <= c.trades
            assert c.wins + c.losses == c.trades
            assert 0.0 <= c.win_rate <= 100.0


# ── fetch_and_run ───────────────────────────────────────────────────────────

class TestFetchAndRun:
    def test_unknown_environment(self):
        client = MagicMock()
        with pytest.raises(ConfigurationError):
            fetch_and_run(environment="sandbox", client=client)
        client.fetch_all.assert_not_called()

    def test_nothing_fetched_is_upstream_error(self):
        client = MagicMock()
        client.fetch_all.return_value = {}
        with pytest.raises(UpstreamError) as exc:
            fetch_and_run(environment="practice", client=client)
        assert exc.value.stage == "fetch"

    def test_requests_every_available_cross_capped(self, universe_candles):
        client = MagicMock()
        client.fetch_all.return_value = universe_candles
        r = fetch_and_run(environment="live", candle_count=99999, client=client)
        args, kwargs = client.fetch_all.call_args
        assert len(args[0]) == 28
        assert kwargs["count"] == _cfg.MAX_CANDLE_COUNT
        assert kwargs["granularity"] == "M30"
        assert r.environment == "live"
