"""
Cross-Sectional Currency Strength Ranker

Turns aligned cross-rate candles into a strength score and a full 1..N rank
ordering of the currency universe at every timestamp.

Algorithm
─────────
1. For each instrument, compute its "flow" at candle position i: the mean
   per-candle % return  (close − open) / open × 100  over the FLOW_LOOKBACK
   candles strictly before i.  Positions < FLOW_LOOKBACK have no flow.

2. For each currency, collect the signed flow of every instrument that has
   a flow at the timestamp:
     - as BASE currency:  +flow   (pair up = base strong)
     - as QUOTE currency: −flow   (pair up = quote weak)
   The currency's score is the mean of what it collected (0 if nothing).

3. A timestamp yields a RankSnapshot only if at least one currency collected
   a flow.  Ranks: descending score, rank 1 = strongest.

Tie-break
─────────
Equal scores are ordered alphabetically by currency code.  A currency with
no contributing cross scores 0 and is ranked by that tie-break alone. This is an
accepted imprecision, rare with full 28-cross coverage.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from rankedge.backtest.alignment import AlignedSeries, InstrumentSeries
from rankedge.strategy.forex import strategy_config as _cfg

logger = logging.getLogger(__name__)


# ── Data classes ─────────────────────────────────────────────────────────── #

@dataclass(frozen=True)
class RankSnapshot:
    """Strength ranking of the whole universe at one timestamp."""
    time:   pd.Timestamp
    ranks:  Dict[str, int]      # currency → 1..N
    scores: Dict[str, float]    # currency → mean signed flow (%)

    def currency_at(self, rank: int) -> Optional[str]:
        for cur, r in self.ranks.items():
            if r == rank:
                return cur
        return None

    @property
    def strongest(self) -> str:
        return self.currency_at(1)

    @property
    def weakest(self) -> str:
        return self.currency_at(len(self.ranks))

    def ordered(self) -> List[str]:
        return sorted(self.ranks, key=lambda c: self.ranks[c])

    def __str__(self) -> str:
        parts = [f"{c}({self.scores[c]:+.4f})" for c in self.ordered()]
        return f"{self.time} " + " > ".join(parts)


# ── Flow ─────────────────────────────────────────────────────────────────── #

def instrument_flows(series: InstrumentSeries, lookback: int) -> Dict[pd.Timestamp, float]:
    """
    timestamp → windowed mean % return of the `lookback` candles before it.

    Candles with open == 0 contribute 0 but still count in the window length.
    """
    if len(series) <= lookback or lookback <= 0:
        return {}
    opens = series.open
    with np.errstate(divide="ignore", invalid="ignore"):
        ret = np.where(opens != 0, (series.close - opens) / np.where(opens != 0, opens, 1.0) * 100.0, 0.0)
    flow = pd.Series(ret).rolling(lookback).mean().shift(1).to_numpy()
    return {series.times[i]: float(flow[i]) for i in range(lookback, len(series))}


def rank_scores(scores: Dict[str, float]) -> Dict[str, int]:
    """Descending score, alphabetical on ties. Always a permutation of 1..N."""
    ordered = sorted(scores, key=lambda c: (-scores[c], c))
    return {cur: idx + 1 for idx, cur in enumerate(ordered)}


# ── Main ranker ──────────────────────────────────────────────────────────── #

class CurrencyStrengthRanker:
    """
    Builds one RankSnapshot per aligned timestamp with cross-rate coverage.

    Usage:
        ranker = CurrencyStrengthRanker()
        snapshots = ranker.rank_snapshots(aligned)
    """

    def __init__(
        self,
        currencies: Optional[Sequence[str]] = None,
        lookback: Optional[int] = None,
        available: Optional[set] = None,
    ):
        self.currencies = tuple(currencies or _cfg.ALL_CURRENCIES)
        self.lookback   = lookback if lookback is not None else _cfg.FLOW_LOOKBACK
        self.crosses: List[Tuple[str, str, str]] = _cfg.available_crosses(
            self.currencies, available
        )

    def compute_flows(self, aligned: AlignedSeries) -> Dict[str, Dict[pd.Timestamp, float]]:
        flows = {}
        for _, _, inst in self.crosses:
            s = aligned.instruments.get(inst)
            if s is None:
                continue
            flows[inst] = instrument_flows(s, self.lookback)
        return flows

    def compute_strength(
        self,
        ts: pd.Timestamp,
        flows: Dict[str, Dict[pd.Timestamp, float]],
    ) -> Tuple[Dict[str, float], bool]:
        """(scores, has_data) for one timestamp."""
        collected: Dict[str, List[float]] = {c: [] for c in self.currencies}
        for base, quote, inst in self.crosses:
            ret = flows.get(inst, {}).get(ts)
            if ret is None or np.isnan(ret):
                continue
            collected[base].append(ret)
            collected[quote].append(-ret)

        scores: Dict[str, float] = {}
        has_data = False
        for cur in self.currencies:
            vals = collected[cur]
            if not vals:
                scores[cur] = 0.0
                continue
            has_data = True
            scores[cur] = sum(vals) / len(vals)
        return scores, has_data

    def rank_snapshots(self, aligned: AlignedSeries) -> List[RankSnapshot]:
        flows = self.compute_flows(aligned)
        snapshots: List[RankSnapshot] = []
        for ts in aligned.timestamps:
            scores, has_data = self.compute_strength(ts, flows)
            if not has_data:
                continue
            snapshots.append(RankSnapshot(time=ts, ranks=rank_scores(scores), scores=scores))
        logger.info(f"[BACKTEST] Computed {len(snapshots)} rank snapshots "
                    f"from {len(flows)} instruments")
        if snapshots:
            logger.debug(f"[BACKTEST] Latest ranking: {snapshots[-1]}")
        return snapshots
