"""
Tests for strategy_config derived helpers and the lever system.
"""
import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from rankedge.strategy.forex import strategy_config as _cfg


class TestUniverse:
    def test_twenty_eight_crosses(self):
        crosses = _cfg.available_crosses()
        assert len(crosses) == 28
        assert ("EUR", "USD", "EUR_USD") in crosses
        assert ("USD", "JPY", "USD_JPY") in crosses
        assert all(inst in _cfg.AVAILABLE_INSTRUMENTS for _, _, inst in crosses)

    def test_custom_universe(self):
        crosses = _cfg.available_crosses(("A", "B", "C"), {"A_B", "B_C"})
        assert [inst for _, _, inst in crosses] == ["A_B", "B_C"]

    def test_combinations(self):
        combos = _cfg.rank_combinations(8)
        assert len(combos) == 28
        assert all(s < w for s, w in combos)
        assert _cfg.flagship_combo(8) == (1, 8)
        assert _cfg.neutral_combo(8) == (4, 5)
        assert _cfg.key_combos(8) == [(1, 8), (2, 7), (3, 6), (4, 5)]
        assert _cfg.combo_key(2, 7) == "2v7"


class TestLevers:
    def test_typed_coercion(self, monkeypatch):
        monkeypatch.setattr(_cfg, "GATE_LOOKBACK", _cfg.GATE_LOOKBACK)
        monkeypatch.setattr(_cfg, "PIP_VALUE_USD", _cfg.PIP_VALUE_USD)
        applied = _cfg.apply_levers({"GATE_LOOKBACK": "30", "PIP_VALUE_USD": "0.1"})
        assert applied == {"GATE_LOOKBACK": 30, "PIP_VALUE_USD": 0.1}
        assert _cfg.GATE_LOOKBACK == 30
        assert isinstance(_cfg.PIP_VALUE_USD, float)

    def test_unknown_lever(self):
        with pytest.raises(ValueError, match="unknown lever"):
            _cfg.apply_levers({"NOT_A_LEVER": 1})

    def test_function_is_not_a_lever(self):
        with pytest.raises(ValueError):
            _cfg.apply_levers({"apply_levers": 1})

    def test_structured_constant_is_not_a_lever(self):
        with pytest.raises(ValueError, match="not a scalar lever"):
            _cfg.apply_levers({"ALL_CURRENCIES": "EUR,USD"})

    def test_parse_lever_args(self):
        assert _cfg.parse_lever_args(["GATE_LOOKBACK=30", " PF_SENTINEL = 500 "]) == {
            "GATE_LOOKBACK": "30", "PF_SENTINEL": "500",
        }
        assert _cfg.parse_lever_args(None) == {}
        with pytest.raises(ValueError):
            _cfg.parse_lever_args(["GATE_LOOKBACK"])
