"""
Rank-Combination Simulator

For one (strong_rank, weak_rank) pair, walks the ordered rank snapshots and
runs a single-position state machine:

  1. Currencies holding ranks s and w at this snapshot.
  2. Instrument: STRONG_WEAK if it has a candle now (long), else WEAK_STRONG
     (short), else skip the snapshot.
  3. Gates for that instrument/direction; gated = G1 and G2 and G3.
  4. Open position on a different instrument or direction → close it.
  5. Nothing open and not the final snapshot → open at the current close.
  6. Final snapshot → close whatever is still open.

At most one position is open at any time; every opened position is closed
by the end of the run.  No transaction cost: a direction flip on the same
instrument is a free close-then-reopen (EXIT_ADJUSTMENT_PIPS is the hook
for a cost model).

Each run owns its state; the aligned series and snapshots are read-only and
shared between combinations.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import pandas as pd

from rankedge.backtest.alignment import AlignedSeries
from rankedge.strategy.forex import strategy_config as _cfg
from rankedge.strategy.forex.backtest_schema import TradeRecord
from rankedge.strategy.forex.currency_strength import RankSnapshot
from rankedge.strategy.forex.pillar_gates import LONG, SHORT, GateState, evaluate_gates

logger = logging.getLogger(__name__)


def is_jpy(instrument: str) -> bool:
    return "JPY" in instrument


def compute_pips(entry_price: float, exit_price: float, direction: str, jpy: bool) -> float:
    """
    Realised pips.  Long: exit − entry; short: entry − exit.
    ×100 on yen crosses, ×10000 otherwise.

    >>> round(compute_pips(1.1000, 1.1050, "long", False), 6)
    50.0
    >>> round(compute_pips(150.00, 149.50, "short", True), 6)
    50.0
    """
    raw = exit_price - entry_price if direction == LONG else entry_price - exit_price
    mult = _cfg.PIP_MULTIPLIER_JPY if jpy else _cfg.PIP_MULTIPLIER_OTHER
    return raw * mult


@dataclass
class OpenPosition:
    instrument:  str
    direction:   str
    entry_price: float
    entry_time:  pd.Timestamp
    is_jpy:      bool
    gated:       bool


@dataclass
class ComboRun:
    """Raw output of one combination's simulation (aggregated in stats.py)."""
    strong_rank:       int
    weak_rank:         int
    trades:            List[TradeRecord] = field(default_factory=list)
    curve:             List[Dict]        = field(default_factory=list)
    rejected_by_gate2: int   = 0
    rejected_by_gate3: int   = 0
    opened:            int   = 0
    closed:            int   = 0
    max_open:          int   = 0
    final_equity:      float = 0.0
    max_dd_pct:        float = 0.0

    @property
    def key(self) -> str:
        return _cfg.combo_key(self.strong_rank, self.weak_rank)


class ComboSimulator:
    """
    Runs rank-combination simulations over one aligned dataset.

    Usage:
        sim = ComboSimulator(aligned, snapshots)
        run = sim.run(1, 8, record_curve=True)
    """

    def __init__(
        self,
        aligned: AlignedSeries,
        snapshots: List[RankSnapshot],
        lookback: Optional[int] = None,
    ):
        self.aligned   = aligned
        self.snapshots = snapshots
        self.lookback  = lookback
        # (instrument, ts, direction) → GateState; shared by all combinations
        self._gates: Dict[Tuple[str, pd.Timestamp, str], GateState] = {}

    def resolve_instrument(
        self, strong: str, weak: str, ts: pd.Timestamp
    ) -> Tuple[Optional[str], Optional[str]]:
        direct  = _cfg.instrument_name(strong, weak)
        inverse = _cfg.instrument_name(weak, strong)
        if self.aligned.has(direct, ts):
            return direct, LONG
        if self.aligned.has(inverse, ts):
            return inverse, SHORT
        return None, None

    def gates(self, instrument: str, ts: pd.Timestamp, direction: str) -> GateState:
        k = (instrument, ts, direction)
        g = self._gates.get(k)
        if g is None:
            g = evaluate_gates(self.aligned, instrument, ts, direction, self.lookback)
            self._gates[k] = g
        return g

    def run(self, strong_rank: int, weak_rank: int, record_curve: bool = False) -> ComboRun:
        out = ComboRun(strong_rank=strong_rank, weak_rank=weak_rank)
        equity = _cfg.STARTING_EQUITY
        peak   = equity
        max_dd = 0.0
        position: Optional[OpenPosition] = None
        last = len(self.snapshots) - 1

        def _close(pos: OpenPosition, exit_price: float, ts: pd.Timestamp) -> None:
            nonlocal equity, peak, max_dd
            pips = compute_pips(pos.entry_price, exit_price, pos.direction, pos.is_jpy)
            pips += _cfg.EXIT_ADJUSTMENT_PIPS
            out.trades.append(TradeRecord(
                instrument  = pos.instrument,
                direction   = pos.direction,
                entry_time  = pos.entry_time,
                exit_time   = ts,
                entry_price = pos.entry_price,
                exit_price  = exit_price,
                pips        = pips,
                gated       = pos.gated,
            ))
            out.closed += 1
            equity += pips * _cfg.PIP_VALUE_USD
            if equity > peak:
                peak = equity
            if peak > 0:
                max_dd = min(max_dd, (equity - peak) / peak * 100.0)

        for i, snap in enumerate(self.snapshots):
            ts = snap.time
            strong = snap.currency_at(strong_rank)
            weak   = snap.currency_at(weak_rank)
            instrument, direction = (None, None)
            if strong and weak:
                instrument, direction = self.resolve_instrument(strong, weak, ts)

            if instrument is None:
                if position is not None and i == last:
                    exit_price = self.aligned.last_close_at_or_before(position.instrument, ts)
                    if exit_price is None:
                        exit_price = position.entry_price
                    _close(position, exit_price, ts)
                    position = None
                if record_curve:
                    out.curve.append({"time": ts, "equity": equity})
                continue

            gate = self.gates(instrument, ts, direction)
            if not gate.breakout_gate:
                out.rejected_by_gate2 += 1
            if not gate.vector_gate:
                out.rejected_by_gate3 += 1

            current_close = self.aligned.close_at(instrument, ts)

            if position is not None:
                changed = position.instrument != instrument or position.direction != direction
                if changed or i == last:
                    exit_price = self.aligned.close_at(position.instrument, ts)
                    if exit_price is None:
                        exit_price = current_close
                    _close(position, exit_price, ts)
                    position = None

            if position is None and i < last:
                position = OpenPosition(
                    instrument  = instrument,
                    direction   = direction,
                    entry_price = current_close,
                    entry_time  = ts,
                    is_jpy      = is_jpy(instrument),
                    gated       = gate.all_open,
                )
                out.opened += 1
                out.max_open = max(out.max_open, out.opened - out.closed)

            if record_curve:
                out.curve.append({"time": ts, "equity": equity})

        out.final_equity = equity
        out.max_dd_pct   = max_dd
        logger.debug(f"[BACKTEST] {out.key}: {len(out.trades)} trades, equity={equity:.2f}")
        return out
