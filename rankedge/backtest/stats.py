"""
Statistics Aggregator

Reduces ComboRun trade lists into ComboResult ratios, flagship session
buckets, the pillar edge decomposition and the reported curves.

  win_rate      = wins / trades × 100                     (0 with no trades)
  profit_factor = gross_profit / gross_loss
                  PF_SENTINEL when gross_loss == 0 and gross_profit > 0, else 0
  expectancy    = total_pips / trades

A trade with pips ≤ 0 is a loss.
"""
from __future__ import annotations

import math
from typing import Dict, List, Optional

from rankedge.backtest.combo_simulator import ComboRun
from rankedge.strategy.forex import strategy_config as _cfg
from rankedge.strategy.forex.backtest_schema import (
    ComboResult, PillarSummary, SessionStats, TradeRecord,
)
from rankedge.strategy.forex.session_filter import SessionFilter


def profit_factor(gross_profit: float, gross_loss: float) -> float:
    if gross_loss > 0:
        return gross_profit / gross_loss
    return _cfg.PF_SENTINEL if gross_profit > 0 else 0.0


def _tally(trades: List[TradeRecord]) -> dict:
    wins = [t.pips for t in trades if t.is_win]
    losses = [t.pips for t in trades if not t.is_win]
    gross_profit = sum(wins)
    gross_loss = abs(sum(losses))
    n = len(trades)
    return {
        "trades":        n,
        "wins":          len(wins),
        "losses":        len(losses),
        "total_pips":    sum(t.pips for t in trades),
        "gross_profit":  gross_profit,
        "gross_loss":    gross_loss,
        "win_rate":      len(wins) / n * 100.0 if n else 0.0,
        "profit_factor": profit_factor(gross_profit, gross_loss),
    }


def aggregate_combo(run: ComboRun) -> ComboResult:
    """ComboRun → ComboResult (all trades + the gated subset)."""
    allt = _tally(run.trades)
    gated = _tally([t for t in run.trades if t.gated])
    n = allt["trades"]
    return ComboResult(
        strong_rank       = run.strong_rank,
        weak_rank         = run.weak_rank,
        trades            = n,
        wins              = allt["wins"],
        losses            = allt["losses"],
        total_pips        = allt["total_pips"],
        gross_profit      = allt["gross_profit"],
        gross_loss        = allt["gross_loss"],
        win_rate          = allt["win_rate"],
        profit_factor     = allt["profit_factor"],
        avg_win           = allt["gross_profit"] / allt["wins"] if allt["wins"] else 0.0,
        avg_loss          = allt["gross_loss"] / allt["losses"] if allt["losses"] else 0.0,
        expectancy        = allt["total_pips"] / n if n else 0.0,
        gated_trades      = gated["trades"],
        gated_wins        = gated["wins"],
        gated_win_rate    = gated["win_rate"],
        gated_pips        = gated["total_pips"],
        gated_pf          = gated["profit_factor"],
        rejected_by_gate2 = run.rejected_by_gate2,
        rejected_by_gate3 = run.rejected_by_gate3,
        final_equity      = run.final_equity,
        max_dd_pct        = run.max_dd_pct,
    )


def session_stats(trades: List[TradeRecord], sf: Optional[SessionFilter] = None) -> List[SessionStats]:
    """Bucket trades by the UTC hour of their entry. One row per session, always."""
    sf = sf or SessionFilter()
    buckets: Dict[str, List[TradeRecord]] = {name: [] for name in sf.sessions}
    for t in trades:
        buckets[sf.session_of(t.entry_time)].append(t)

    out = []
    for name, bucket in buckets.items():
        tally = _tally(bucket)
        out.append(SessionStats(
            session       = name,
            trades        = tally["trades"],
            wins          = tally["wins"],
            win_rate      = tally["win_rate"],
            total_pips    = tally["total_pips"],
            profit_factor = tally["profit_factor"],
        ))
    return out


def pillar_summary(flagship: Optional[ComboResult], neutral: Optional[ComboResult]) -> PillarSummary:
    """
    Heuristic edge decomposition.  baseline = neutral combination's win rate
    (50.0 when it never traded); a missing flagship counts as 50% / 50%.
    """
    baseline = neutral.win_rate if neutral is not None and neutral.trades > 0 else 50.0
    wr       = flagship.win_rate if flagship is not None else 50.0
    gated_wr = flagship.gated_win_rate if flagship is not None else 50.0
    return PillarSummary(
        baseline_wr   = baseline,
        pillar1_edge  = wr - baseline,
        pillar2_edge  = gated_wr - wr,
        pillar3_edge  = gated_wr - baseline,
        combined_edge = flagship.gated_win_rate if flagship is not None else 0.0,
    )


def downsample(points: List[dict], max_points: Optional[int] = None) -> List[dict]:
    """Every step-th point, step = ceil(len / max_points), so ≤ max_points remain."""
    max_points = max_points or _cfg.MAX_CURVE_POINTS
    if len(points) <= max_points:
        return list(points)
    step = math.ceil(len(points) / max_points)
    return points[::step]


def drawdown_curve(curve: List[dict], start_equity: Optional[float] = None) -> List[dict]:
    """% distance below the running equity peak (peak starts at STARTING_EQUITY)."""
    peak = _cfg.STARTING_EQUITY if start_equity is None else start_equity
    out = []
    for pt in curve:
        if pt["equity"] > peak:
            peak = pt["equity"]
        dd = (pt["equity"] - peak) / peak * 100.0 if peak > 0 else 0.0
        out.append({"time": pt["time"], "drawdown": dd})
    return out


def best_combo(results: List[ComboResult]) -> Optional[ComboResult]:
    """Highest total pips; on a tie the later combination wins."""
    best = None
    for r in results:
        if best is None or r.total_pips >= best.total_pips:
            best = r
    return best
