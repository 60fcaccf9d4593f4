"""
OANDA REST API Client (v20) — historical candles only

Candle Source Adapter for the rank expectancy backtester:
  - Completed mid-price OHLCV candles per instrument
  - Concurrent batch fetch across every available cross
  - Per-instrument failure isolation (a failed cross is ABSENT, not fatal)

Live base URL:     https://api-fxtrade.oanda.com
Practice base URL: https://api-fxpractice.oanda.com

Credentials come from the repo-root .env (or the process environment):
  OANDA_API_KEY       — practice token (and fallback for live)
  OANDA_LIVE_API_KEY  — live token, preferred when env='live'
  OANDA_ENV           — 'practice' (default) or 'live'
"""
import os, requests, logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Optional, Dict, List

import pandas as pd
from dotenv import load_dotenv

from rankedge.backtest.errors import ConfigurationError
from rankedge.strategy.forex import strategy_config as _cfg

logger = logging.getLogger(__name__)

_ROOT = Path(__file__).parents[2]
load_dotenv(_ROOT / ".env")

LIVE_BASE     = "https://api-fxtrade.oanda.com"
PRACTICE_BASE = "https://api-fxpractice.oanda.com"

ENVIRONMENTS = ("practice", "live")

CANDLE_COLUMNS = ["open", "high", "low", "close", "volume"]


def empty_candles() -> pd.DataFrame:
    """The 'instrument absent' value: no rows, the usual OHLCV columns."""
    df = pd.DataFrame(columns=CANDLE_COLUMNS, dtype=float)
    df.index = pd.DatetimeIndex([], name="time")
    return df


def parse_candles(payload: dict) -> pd.DataFrame:
    """
    OANDA /candles JSON → time-ascending OHLCV DataFrame.

    Still-forming candles (complete == False) are dropped, and so is any
    record without a full mid o/h/l/c quote. Duplicate timestamps keep the
    last occurrence.
    """
    rows = []
    skipped = 0
    for c in payload.get("candles", []):
        if c.get("complete") is False:
            continue
        mid = c.get("mid") or {}
        if any(mid.get(k) is None for k in ("o", "h", "l", "c")):
            skipped += 1
            continue
        rows.append({
            "time":   pd.Timestamp(c["time"]).tz_localize(None),
            "open":   float(mid["o"]),
            "high":   float(mid["h"]),
            "low":    float(mid["l"]),
            "close":  float(mid["c"]),
            "volume": int(c.get("volume", 0)),
        })
    if skipped:
        logger.warning(f"[FETCH] Dropped {skipped} candles without a mid quote")
    if not rows:
        return empty_candles()
    df = pd.DataFrame(rows).set_index("time")
    df = df[~df.index.duplicated(keep="last")]
    df.sort_index(inplace=True)
    return df


class OandaClient:
    """
    OANDA v20 REST client for historical candle reads.

    Parameters
    ----------
    env : str
        'live' or 'practice'
    api_key : str
        OANDA API token (overrides .env if provided)
    """

    def __init__(
        self,
        env: Optional[str] = None,
        api_key: Optional[str] = None,
    ):
        self.env = env or os.getenv("OANDA_ENV", "practice")
        if self.env not in ENVIRONMENTS:
            raise ConfigurationError(f"Unknown OANDA environment '{self.env}' (use practice|live)")

        if self.env == "live":
            self.api_key = api_key or os.getenv("OANDA_LIVE_API_KEY") or os.getenv("OANDA_API_KEY")
        else:
            self.api_key = api_key or os.getenv("OANDA_API_KEY")
        self.base = LIVE_BASE if self.env == "live" else PRACTICE_BASE

        if not self.api_key:
            raise ConfigurationError(f"OANDA API token not configured for '{self.env}'")

        self.headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept":        "application/json",
        }

    def _get(self, path: str, params: dict = None) -> dict:
        resp = requests.get(
            f"{self.base}{path}", headers=self.headers,
            params=params, timeout=_cfg.FETCH_TIMEOUT_SECS,
        )
        if resp.status_code != 200:
            logger.error(f"[FETCH] GET {path} → {resp.status_code}: {resp.text[:300]}")
            return {}
        return resp.json()

    # ── Market Data ───────────────────────────────────────────────────

    def get_candles(
        self,
        instrument: str,
        granularity: Optional[str] = None,
        count: Optional[int] = None,
    ) -> pd.DataFrame:
        """
        Completed mid candles for one instrument ("EUR_USD" or "EUR/USD").

        count is capped at MAX_CANDLE_COUNT. Any provider failure returns an
        empty DataFrame so the caller can treat the instrument as absent.
        """
        instrument = instrument.replace("/", "_")
        granularity = granularity or _cfg.GRANULARITY
        count = min(int(count or _cfg.DEFAULT_CANDLE_COUNT), _cfg.MAX_CANDLE_COUNT)
        try:
            data = self._get(
                f"/v3/instruments/{instrument}/candles",
                params={"granularity": granularity, "count": count, "price": _cfg.PRICE_TYPE},
            )
            return parse_candles(data)
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            logger.error(f"[FETCH] {instrument} {granularity}: {e}")
            return empty_candles()

    def fetch_all(
        self,
        instruments: List[str],
        granularity: Optional[str] = None,
        count: Optional[int] = None,
    ) -> Dict[str, pd.DataFrame]:
        """
        Fetch every instrument concurrently, one task per instrument.

        A task that raises or comes back empty is logged and left out of the
        result; it never cancels its siblings. Output keys follow the order of
        `instruments`, not completion order.
        """
        if not instruments:
            return {}
        workers = max(1, min(len(instruments), _cfg.FETCH_MAX_WORKERS))
        fetched: Dict[str, pd.DataFrame] = {}

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(self.get_candles, inst, granularity, count): inst
                for inst in instruments
            }
            for future in as_completed(futures):
                inst = futures[future]
                try:
                    df = future.result()
                except Exception as e:
                    logger.error(f"[FETCH] {inst} task failed: {e}")
                    continue
                if df is None or df.empty:
                    logger.warning(f"[FETCH] {inst}: no completed candles, treating as absent")
                    continue
                fetched[inst] = df

        return {inst: fetched[inst] for inst in instruments if inst in fetched}


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    client = OandaClient()
    print(f"Testing OANDA candle feed ({client.env})...\n")
    for inst in ["EUR_USD", "USD_JPY", "GBP_JPY"]:
        df = client.get_candles(inst, count=10)
        if df.empty:
            print(f"  {inst}: no data")
            continue
        print(f"  {inst}: {len(df)} candles, last close={df['close'].iloc[-1]:.5f} @ {df.index[-1]}")
