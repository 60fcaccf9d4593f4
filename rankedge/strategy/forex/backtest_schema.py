"""
backtest_schema.py — Canonical rank expectancy result schema
=============================================================
Single source of truth for the data contract between run_rank_backtest() and
any consumer (Flask endpoint, CLI table, tests).

Canonical field names are snake_case.  The JSON payload (to_dict) rounds
the way the dashboards expect:

  win rates, pips, avg win/loss   — 1 decimal
  profit factor, expectancy       — 2 decimals
  equity / drawdown points        — 2 decimals

No float in to_dict() output is ever inf or NaN.

Backward-compat aliases
-----------------------
The first dashboards read camelCase keys.  RankBacktestResult.get() and
RankBacktestResult[...] accept them:

  r["candlesPerPair"]   → r.candles_per_pair
  r.get("comboResults") → r.combo_results
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# Legacy camelCase field-name aliases
_ALIASES: Dict[str, str] = {
    "candlesPerPair":  "candles_per_pair",
    "totalSnapshots":  "total_snapshots",
    "pairsLoaded":     "pairs_loaded",
    "comboResults":    "combo_results",
    "equityCurves":    "equity_curves",
    "drawdownCurve":   "drawdown_curve",
    "bestCombo":       "best_combo",
    "dateRange":       "date_range",
    "sessionStats":    "session_stats",
    "pillarSummary":   "pillar_summary",
}


def _r(x: float, nd: int) -> float:
    """Round for JSON; inf/NaN collapse to 0.0 so they never leak out."""
    if x is None or not math.isfinite(x):
        return 0.0
    return round(float(x), nd)


# ── Trades ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TradeRecord:
    """One closed position. Immutable, appended per combination."""
    instrument:  str
    direction:   str      # "long" | "short"
    entry_time:  Any      # pd.Timestamp
    exit_time:   Any
    entry_price: float
    exit_price:  float
    pips:        float
    gated:       bool     # all three gates open at ENTRY

    @property
    def is_win(self) -> bool:
        return self.pips > 0


# ── Per-combination ───────────────────────────────────────────────────────

@dataclass
class ComboResult:
    """Aggregated performance of one (strong_rank, weak_rank) combination."""
    strong_rank:   int
    weak_rank:     int

    trades:        int   = 0
    wins:          int   = 0
    losses:        int   = 0
    total_pips:    float = 0.0
    gross_profit:  float = 0.0
    gross_loss:    float = 0.0     # positive number
    win_rate:      float = 0.0     # percent 0..100
    profit_factor: float = 0.0     # PF_SENTINEL when no losers
    avg_win:       float = 0.0
    avg_loss:      float = 0.0
    expectancy:    float = 0.0     # pips per trade

    # ── Gated (all three pillars open at entry) ──────────────────────────
    gated_trades:   int   = 0
    gated_wins:     int   = 0
    gated_win_rate: float = 0.0
    gated_pips:     float = 0.0
    gated_pf:       float = 0.0

    # ── Gate rejections (per evaluated snapshot) ─────────────────────────
    rejected_by_gate2: int = 0     # wall break closed
    rejected_by_gate3: int = 0     # trend vector closed

    # ── Account path ─────────────────────────────────────────────────────
    final_equity:  float = 0.0
    max_dd_pct:    float = 0.0     # peak-to-trough, % (≤ 0)

    @property
    def key(self) -> str:
        return f"{self.strong_rank}v{self.weak_rank}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "combo":             self.key,
            "strong_rank":       self.strong_rank,
            "weak_rank":         self.weak_rank,
            "trades":            self.trades,
            "wins":              self.wins,
            "losses":            self.losses,
            "total_pips":        _r(self.total_pips, 1),
            "gross_profit":      _r(self.gross_profit, 1),
            "gross_loss":        _r(self.gross_loss, 1),
            "win_rate":          _r(self.win_rate, 1),
            "profit_factor":     _r(self.profit_factor, 2),
            "avg_win":           _r(self.avg_win, 1),
            "avg_loss":          _r(self.avg_loss, 1),
            "expectancy":        _r(self.expectancy, 2),
            "gated_trades":      self.gated_trades,
            "gated_wins":        self.gated_wins,
            "gated_win_rate":    _r(self.gated_win_rate, 1),
            "gated_pips":        _r(self.gated_pips, 1),
            "gated_pf":          _r(self.gated_pf, 2),
            "rejected_by_gate2": self.rejected_by_gate2,
            "rejected_by_gate3": self.rejected_by_gate3,
            "final_equity":      _r(self.final_equity, 2),
            "max_dd_pct":        _r(self.max_dd_pct, 2),
        }


@dataclass
class SessionStats:
    session:       str
    trades:        int   = 0
    wins:          int   = 0
    win_rate:      float = 0.0
    total_pips:    float = 0.0
    profit_factor: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session":       self.session,
            "trades":        self.trades,
            "wins":          self.wins,
            "win_rate":      _r(self.win_rate, 1),
            "total_pips":    _r(self.total_pips, 1),
            "profit_factor": _r(self.profit_factor, 2),
        }


@dataclass
class PillarSummary:
    """
    Heuristic edge decomposition, NOT a causal analysis.

    baseline_wr is the neutral middle combination's win rate, a stand-in for
    rank-agnostic trading.
    """
    baseline_wr:      float = 50.0
    pillar1_edge:     float = 0.0   # flagship WR − baseline
    pillar2_edge:     float = 0.0   # flagship gated WR − flagship WR
    pillar3_edge:     float = 0.0   # flagship gated WR − baseline
    combined_edge:    float = 0.0   # flagship gated WR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "baseline_wr":                 _r(self.baseline_wr, 1),
            "pillar1_divergence_edge":     _r(self.pillar1_edge, 1),
            "pillar2_wall_break_edge":     _r(self.pillar2_edge, 1),
            "pillar3_vector_edge":         _r(self.pillar3_edge, 1),
            "combined_edge":               _r(self.combined_edge, 1),
        }


# ── Whole run ─────────────────────────────────────────────────────────────

@dataclass
class RankBacktestResult:
    """Typed result returned by run_rank_backtest()."""
    version:          str = ""
    timestamp:        str = ""
    environment:      str = "practice"
    candles_per_pair: int = 0
    total_snapshots:  int = 0
    pairs_loaded:     int = 0

    combo_results:   List[ComboResult]                  = field(default_factory=list)
    equity_curves:   Dict[str, List[Dict[str, Any]]]    = field(default_factory=dict)
    drawdown_curve:  List[Dict[str, Any]]               = field(default_factory=list)
    best_combo:      Optional[ComboResult]              = None
    date_range:      Dict[str, Optional[str]]           = field(default_factory=dict)
    session_stats:   List[SessionStats]                 = field(default_factory=list)
    pillar_summary:  PillarSummary                      = field(default_factory=PillarSummary)

    # Raw per-combination trade lists (not serialised by to_dict)
    trades:          Dict[str, List[TradeRecord]]       = field(default_factory=dict)

    def combo(self, strong_rank: int, weak_rank: int) -> Optional[ComboResult]:
        for c in self.combo_results:
            if c.strong_rank == strong_rank and c.weak_rank == weak_rank:
                return c
        return None

    # ── Dict-style access (backward compat) ─────────────────────────────

    def get(self, key: str, default: Any = None) -> Any:
        actual = _ALIASES.get(key, key)
        return getattr(self, actual, default)

    def __getitem__(self, key: str) -> Any:
        actual = _ALIASES.get(key, key)
        try:
            return getattr(self, actual)
        except AttributeError:
            raise KeyError(key)

    def __contains__(self, key: str) -> bool:
        return hasattr(self, _ALIASES.get(key, key))

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe response payload (trade lists omitted)."""
        return {
            "success":          True,
            "version":          self.version,
            "timestamp":        self.timestamp,
            "environment":      self.environment,
            "candles_per_pair": self.candles_per_pair,
            "total_snapshots":  self.total_snapshots,
            "pairs_loaded":     self.pairs_loaded,
            "combo_results":    [c.to_dict() for c in self.combo_results],
            "equity_curves":    {
                k: [{"time": str(p["time"]), "equity": _r(p["equity"], 2)} for p in pts]
                for k, pts in self.equity_curves.items()
            },
            "drawdown_curve":   [
                {"time": str(p["time"]), "drawdown": _r(p["drawdown"], 2)}
                for p in self.drawdown_curve
            ],
            "best_combo":       self.best_combo.to_dict() if self.best_combo else None,
            "date_range":       dict(self.date_range),
            "session_stats":    [s.to_dict() for s in self.session_stats],
            "pillar_summary":   self.pillar_summary.to_dict(),
        }
