"""
Session Buckets — UTC-hour partition of trade entries

Every flagship (1-vs-N) trade is attributed to exactly one session by the UTC
hour of its ENTRY timestamp:

  ASIA      00:00–07:00  (and 21:00–24:00, late NY wraps to Asia)
  LONDON    07:00–12:00
  NEW_YORK  12:00–17:00
  NY_CLOSE  17:00–21:00

The boundaries live in strategy_config.SESSION_WINDOWS_UTC.
"""
from datetime import datetime
from typing import List

import pytz

from . import strategy_config as _cfg

UTC = pytz.utc


class SessionFilter:

    def __init__(self, windows=None, default: str = None):
        self.windows = tuple(windows or _cfg.SESSION_WINDOWS_UTC)
        self.default = default or _cfg.SESSION_DEFAULT

    @property
    def sessions(self) -> List[str]:
        """Bucket names in report order (window order, default included once)."""
        names = [name for name, _, _ in self.windows]
        if self.default not in names:
            names.append(self.default)
        return names

    def session_of(self, dt: datetime) -> str:
        """
        Session for a timestamp. Naive timestamps are taken as UTC (that is how
        the candle adapter stores them); aware ones are converted.
        """
        if dt.tzinfo is not None:
            dt = dt.astimezone(UTC)
        hour = dt.hour
        for name, start, end in self.windows:
            if start <= hour < end:
                return name
        return self.default


if __name__ == "__main__":
    sf = SessionFilter()
    now = datetime.now(UTC)
    print(f"{now.isoformat()} → {sf.session_of(now)}")
