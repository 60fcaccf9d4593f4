#!/usr/bin/env python3
"""
rank_expectancy_backtest.py — Run the 28-combination rank backtest from the shell

Usage:
  python3 -m backtesting.rank_expectancy_backtest                      # practice, 5000 M30
  python3 -m backtesting.rank_expectancy_backtest --env live --candles 3000
  python3 -m backtesting.rank_expectancy_backtest --granularity H1 --json /tmp/rank.json
  python3 -m backtesting.rank_expectancy_backtest --lever GATE_LOOKBACK=30

Exit codes: 0 ok, 2 configuration error, 3 insufficient data, 4 upstream error.
"""
import sys, json, logging, argparse
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parents[1]))

from rankedge.backtest.engine import fetch_and_run
from rankedge.backtest.errors import (
    ConfigurationError, InsufficientDataError, UpstreamError,
)
from rankedge.strategy.forex import strategy_config as _cfg
from rankedge.strategy.forex.backtest_schema import RankBacktestResult

logger = logging.getLogger("rank_backtest")

EXIT_CODES = {
    ConfigurationError:    2,
    InsufficientDataError: 3,
    UpstreamError:         4,
}


def fmt_report(r: RankBacktestResult) -> str:
    d = r.to_dict()
    lines = [
        f"\n{'═'*86}",
        f"  RANK EXPECTANCY BACKTEST v{d['version']}  ({d['environment']})",
        f"  {d['date_range'].get('start')} → {d['date_range'].get('end')}   "
        f"pairs={d['pairs_loaded']}  candles/pair={d['candles_per_pair']}  "
        f"snapshots={d['total_snapshots']}",
        f"{'═'*86}",
        f"  {'combo':<6} {'trades':>6} {'WR%':>6} {'PF':>7} {'pips':>9} {'exp':>7} "
        f"{'g.trd':>6} {'g.WR%':>6} {'g.PF':>7} {'rej2':>6} {'rej3':>6}",
        f"  {'─'*82}",
    ]
    for c in d["combo_results"]:
        lines.append(
            f"  {c['combo']:<6} {c['trades']:>6} {c['win_rate']:>6.1f} {c['profit_factor']:>7.2f} "
            f"{c['total_pips']:>+9.1f} {c['expectancy']:>+7.2f} "
            f"{c['gated_trades']:>6} {c['gated_win_rate']:>6.1f} {c['gated_pf']:>7.2f} "
            f"{c['rejected_by_gate2']:>6} {c['rejected_by_gate3']:>6}"
        )

    p = d["pillar_summary"]
    lines += [
        f"\n  PILLARS  baseline WR={p['baseline_wr']:.1f}%",
        f"     P1 divergence  {p['pillar1_divergence_edge']:+.1f}",
        f"     P2 wall break  {p['pillar2_wall_break_edge']:+.1f}",
        f"     P3 vector      {p['pillar3_vector_edge']:+.1f}",
        f"     combined       {p['combined_edge']:.1f}%",
        f"\n  SESSIONS (flagship)",
    ]
    for s in d["session_stats"]:
        lines.append(
            f"     {s['session']:<9} trades={s['trades']:<5} WR={s['win_rate']:>5.1f}%  "
            f"pips={s['total_pips']:>+8.1f}  PF={s['profit_factor']:.2f}"
        )
    if d["best_combo"]:
        b = d["best_combo"]
        lines.append(f"\n  Best combo: {b['combo']}  {b['total_pips']:+.1f} pips  WR={b['win_rate']:.1f}%")
    lines.append(f"{'─'*86}")
    return "\n".join(lines)


def main(argv=None) -> int:
    p = argparse.ArgumentParser(description="Cross-sectional rank expectancy backtest")
    p.add_argument("--env", default="practice", choices=["practice", "live"])
    p.add_argument("--candles", type=int, default=_cfg.DEFAULT_CANDLE_COUNT,
                   help=f"Candles per pair (capped at {_cfg.MAX_CANDLE_COUNT})")
    p.add_argument("--granularity", default=None, help=f"OANDA granularity (default {_cfg.GRANULARITY})")
    p.add_argument("--json", type=str, default=None, help="Write the full JSON report here")
    p.add_argument("--lever", action="append", default=[], metavar="KEY=VALUE",
                   help="Override a strategy_config constant (repeatable)")
    p.add_argument("--verbose", "-v", action="store_true")
    args = p.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        if args.lever:
            try:
                applied = _cfg.apply_levers(_cfg.parse_lever_args(args.lever))
            except ValueError as e:
                raise ConfigurationError(str(e))
            logger.info(f"Levers applied: {applied}")
        result = fetch_and_run(
            environment=args.env, candle_count=args.candles, granularity=args.granularity,
        )
    except (ConfigurationError, InsufficientDataError, UpstreamError) as e:
        logger.error(f"[{e.stage}] {e}")
        return next(code for cls, code in EXIT_CODES.items() if isinstance(e, cls))

    print(fmt_report(result))
    if args.json:
        out = Path(args.json)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(result.to_dict(), indent=2))
        print(f"  JSON report → {out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
