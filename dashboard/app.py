"""
Rank Expectancy Backtest — Flask API
Serves the backtest endpoint consumed by the dashboards at http://localhost:5001

  POST /api/rank_backtest   {"environment": "practice"|"live", "candles": 5000}
  GET  /api/health

Failure payloads carry {"success": false, "error": ..., "stage": ...} and a
status code: 500 configuration, 400 bad request / insufficient data,
502 upstream.  Stack traces are logged, never returned.
"""
import sys, logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional

from flask import Flask, jsonify, request

sys.path.insert(0, str(Path(__file__).parents[1]))
from rankedge.backtest.engine import fetch_and_run
from rankedge.backtest.errors import (
    ConfigurationError, InsufficientDataError, RankBacktestError, UpstreamError,
)
from rankedge.exchange.oanda_client import ENVIRONMENTS, OandaClient
from rankedge.strategy.forex import strategy_config as _cfg

app = Flask(__name__)
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("dashboard")

_STATUS_BY_ERROR = (
    (ConfigurationError,    500),
    (InsufficientDataError, 400),
    (UpstreamError,         502),
)


def get_client(environment: str) -> OandaClient:
    """One client per request; the environment decides the host and token."""
    return OandaClient(env=environment)


def _error(message: str, stage: str, status: int):
    return jsonify({"success": False, "error": message, "stage": stage}), status


def _parse_candle_count(raw) -> Optional[int]:
    """None / 0 mean the default count; booleans and non-integers are rejected."""
    if isinstance(raw, bool):
        return None
    if raw is None or raw == 0:
        return _cfg.DEFAULT_CANDLE_COUNT
    try:
        count = int(raw)
    except (TypeError, ValueError):
        return None
    if count <= 0:
        return None
    return min(count, _cfg.MAX_CANDLE_COUNT)


@app.route("/api/health")
def api_health():
    return jsonify({
        "status":    "ok",
        "version":   _cfg.ENGINE_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


@app.route("/api/rank_backtest", methods=["POST"])
def api_rank_backtest():
    body = request.get_json(silent=True) or {}
    environment = body.get("environment") or "practice"
    if environment not in ENVIRONMENTS:
        return _error(f"Unknown environment '{environment}' (use practice|live)", "request", 400)

    count = _parse_candle_count(body.get("candles"))
    if count is None:
        return _error(f"Invalid candle count: {body.get('candles')!r}", "request", 400)

    try:
        client = get_client(environment)
        result = fetch_and_run(environment=environment, candle_count=count, client=client)
    except RankBacktestError as e:
        status = next((code for cls, code in _STATUS_BY_ERROR if isinstance(e, cls)), 500)
        logger.warning(f"[BACKTEST] {e.stage} error: {e}")
        return _error(str(e), e.stage, status)
    except Exception as e:
        logger.exception("[BACKTEST] unexpected failure")
        return _error(f"Backtest failed: {type(e).__name__}", "engine", 500)

    return jsonify(result.to_dict())


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5001, debug=False)
