"""
Rank Expectancy Backtest Engine
===============================
Cross-sectional rank-divergence backtest with THREE PILLARS:

  Pillar 1: rank divergence   — trade rank s against rank w
  Pillar 2: wall break        — GATE_LOOKBACK-candle structural breakout
  Pillar 3: trend vector      — linear-regression slope confirmation

Pipeline (strictly left to right):

  OandaClient.fetch_all  →  align  →  CurrencyStrengthRanker
        →  ComboSimulator (every rank pair)  →  stats  →  RankBacktestResult

Only the fetch stage touches the network.  Everything after it is pure,
single-threaded computation over in-memory data, so the same candles always
give bit-identical combination results.

Usage (offline, candles already in hand):
    from rankedge.backtest.engine import run_rank_backtest
    r = run_rank_backtest(pair_candles)
    print(r.combo(1, 8).win_rate)

Usage (fetch + run):
    r = fetch_and_run(environment="practice", candle_count=5000)
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Sequence

import pandas as pd

from rankedge.backtest import stats
from rankedge.backtest.alignment import align
from rankedge.backtest.combo_simulator import ComboSimulator
from rankedge.backtest.errors import ConfigurationError, UpstreamError
from rankedge.exchange.oanda_client import ENVIRONMENTS, OandaClient
from rankedge.strategy.forex import strategy_config as _cfg
from rankedge.strategy.forex.backtest_schema import RankBacktestResult
from rankedge.strategy.forex.currency_strength import CurrencyStrengthRanker

logger = logging.getLogger(__name__)


def run_rank_backtest(
    pair_candles: Dict[str, pd.DataFrame],
    environment: str = "practice",
    currencies: Optional[Sequence[str]] = None,
    available: Optional[set] = None,
) -> RankBacktestResult:
    """
    Run every rank combination over already-fetched candles.

    Raises InsufficientDataError when fewer than MIN_TIMESTAMPS distinct
    timestamps survive alignment.
    """
    currencies = tuple(currencies or _cfg.ALL_CURRENCIES)
    n = len(currencies)

    aligned = align(pair_candles)
    aligned.require_min_timestamps()

    ranker = CurrencyStrengthRanker(currencies=currencies, available=available)
    snapshots = ranker.rank_snapshots(aligned)

    sim = ComboSimulator(aligned, snapshots)
    flagship_key = _cfg.flagship_combo(n)
    neutral_key  = _cfg.neutral_combo(n)
    curve_keys   = set(_cfg.key_combos(n))

    combo_results = []
    equity_curves = {}
    trades = {}
    flagship_run = None

    for s, w in _cfg.rank_combinations(n):
        run = sim.run(s, w, record_curve=(s, w) in curve_keys)
        combo_results.append(stats.aggregate_combo(run))
        trades[run.key] = run.trades
        if (s, w) in curve_keys:
            equity_curves[run.key] = stats.downsample(run.curve)
        if (s, w) == flagship_key:
            flagship_run = run

    result = RankBacktestResult(
        version          = _cfg.ENGINE_VERSION,
        timestamp        = datetime.now(timezone.utc).isoformat(),
        environment      = environment,
        candles_per_pair = len(next(iter(aligned.instruments.values()))) if aligned.instruments else 0,
        total_snapshots  = len(snapshots),
        pairs_loaded     = len(aligned.instruments),
        combo_results    = combo_results,
        equity_curves    = equity_curves,
        date_range       = aligned.date_range,
        trades           = trades,
    )

    flagship = result.combo(*flagship_key)
    neutral  = result.combo(*neutral_key)
    flagship_curve = equity_curves.get(_cfg.combo_key(*flagship_key), [])
    result.drawdown_curve = stats.drawdown_curve(flagship_curve)
    result.session_stats  = stats.session_stats(flagship_run.trades if flagship_run else [])
    result.pillar_summary = stats.pillar_summary(flagship, neutral)
    result.best_combo     = stats.best_combo(combo_results)

    logger.info(
        f"[BACKTEST] Complete. {len(combo_results)} combos. "
        f"Flagship {_cfg.combo_key(*flagship_key)} gated WR: "
        f"{flagship.gated_win_rate if flagship else 0.0:.1f}%"
    )
    return result


def fetch_and_run(
    environment: str = "practice",
    candle_count: Optional[int] = None,
    granularity: Optional[str] = None,
    client: Optional[OandaClient] = None,
) -> RankBacktestResult:
    """
    Fetch every available cross concurrently, then run the backtest.

    ConfigurationError — unknown environment / missing token (before any fetch)
    UpstreamError      — no instrument returned a single completed candle
    """
    if environment not in ENVIRONMENTS:
        raise ConfigurationError(f"Unknown environment '{environment}' (use practice|live)")
    count = min(int(candle_count or _cfg.DEFAULT_CANDLE_COUNT), _cfg.MAX_CANDLE_COUNT)
    granularity = granularity or _cfg.GRANULARITY
    client = client or OandaClient(env=environment)

    instruments = [inst for _, _, inst in _cfg.available_crosses()]
    logger.info(f"[BACKTEST] Fetching {count} {granularity} candles for "
                f"{len(instruments)} pairs ({environment})")
    pair_candles = client.fetch_all(instruments, granularity=granularity, count=count)
    logger.info(f"[BACKTEST] Got {len(pair_candles)}/{len(instruments)} pairs")

    if not pair_candles:
        raise UpstreamError(f"No candle data returned for any of {len(instruments)} instruments")

    return run_rank_backtest(pair_candles, environment=environment)
