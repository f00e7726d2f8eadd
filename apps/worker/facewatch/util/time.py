from __future__ import annotations

import datetime as dt
import time


def now_utc() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def now_utc_iso() -> str:
    return now_utc().isoformat()


def monotonic_ns() -> int:
    return time.monotonic_ns()


def unix_seconds() -> int:
    return int(time.time())
