"""
Tests for the rank_expectancy_backtest command-line entry point.
"""
import sys, os, json
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from unittest.mock import patch

import pytest

from backtesting import rank_expectancy_backtest as cli
from rankedge.backtest.engine import run_rank_backtest
from rankedge.backtest.errors import (
    ConfigurationError, InsufficientDataError, UpstreamError,
)
from rankedge.strategy.forex import strategy_config as _cfg


def test_report_and_json(tmp_path, capsys, universe_candles):
    result = run_rank_backtest(universe_candles)
    out = tmp_path / "rank.json"
    with patch.object(cli, "fetch_and_run", return_value=result) as run:
        code = cli.main(["--env", "live", "--candles", "300", "--json", str(out)])
    assert code == 0
    assert run.call_args[1] == {"environment": "live", "candle_count": 300, "granularity": None}
    printed = capsys.readouterr().out
    assert "RANK EXPECTANCY BACKTEST" in printed
    assert "1v8" in printed
    assert len(json.loads(out.read_text())["combo_results"]) == 28


@pytest.mark.parametrize("exc,code", [
    (ConfigurationError("no token"), 2),
    (InsufficientDataError("too few"), 3),
    (UpstreamError("nothing"), 4),
])
def test_exit_codes(exc, code):
    with patch.object(cli, "fetch_and_run", side_effect=exc):
        assert cli.main([]) == code


def test_bad_lever_is_configuration_error():
    with patch.object(cli, "fetch_and_run") as run:
        assert cli.main(["--lever", "NOPE=1"]) == 2
    run.assert_not_called()


def test_lever_applied(monkeypatch, universe_candles):
    monkeypatch.setattr(_cfg, "GATE_LOOKBACK", _cfg.GATE_LOOKBACK)
    result = run_rank_backtest(universe_candles)
    with patch.object(cli, "fetch_and_run", return_value=result):
        assert cli.main(["--lever", "GATE_LOOKBACK=30"]) == 0
    assert _cfg.GATE_LOOKBACK == 30
