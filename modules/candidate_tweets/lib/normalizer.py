"""
Normalize raw provider items for one work unit.

Pipeline (order matters):
  1. filter   - keep items whose timestamp parses and lies inside the unit window
  2. sort     - newest first (stable, so ties keep provider order)
  3. truncate - keep at most `per_unit_cap`, i.e. the most recent ones
  4. map      - build TweetRecord (UTC calendar date, text fallback, URL fallback)

Nothing in here raises on bad data: unusable items are dropped.
"""

from __future__ import annotations

import email.utils
from collections.abc import Iterable, Mapping
from datetime import datetime, time, timezone
from typing import Any

from .fields import resolve
from .models import TweetRecord, WorkUnit

END_OF_DAY = time(23, 59, 59)
STATUS_URL = "https://twitter.com/{candidate}/status/{tweet_id}"

# "Wed Oct 10 20:19:24 +0000 2018" (classic Twitter API created_at)
_TWITTER_FMT = "%a %b %d %H:%M:%S %z %Y"


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse a provider timestamp into an aware UTC datetime, or None.

    Accepted: datetime, epoch milliseconds (int/float), ISO-8601 strings
    (a trailing 'Z' is fine), the classic Twitter format and RFC 2822.
    Naive values are taken as UTC.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        try:
            dt = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        dt = _parse_string(str(value).strip())
        if dt is None:
            return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_string(s: str) -> datetime | None:
    if not s:
        return None
    try:
        return datetime.fromisoformat(s[:-1] + "+00:00" if s.endswith(("Z", "z")) else s)
    except ValueError:
        pass
    try:
        return datetime.strptime(s, _TWITTER_FMT)
    except ValueError:
        pass
    try:
        return email.utils.parsedate_to_datetime(s)
    except (TypeError, ValueError, IndexError):
        return None


def window_bounds(unit: WorkUnit, window_end_time: time = END_OF_DAY) -> tuple[datetime, datetime]:
    """Inclusive [start 00:00:00Z, end <window_end_time>Z]."""
    lo = datetime.combine(unit.start, time(0, 0, 0), tzinfo=timezone.utc)
    hi = datetime.combine(unit.end, window_end_time, tzinfo=timezone.utc)
    return lo, hi


def status_url(candidate: str, tweet_id: Any) -> str:
    return STATUS_URL.format(candidate=candidate, tweet_id="" if tweet_id is None else tweet_id)


def normalize(
    raw_items: Iterable[Any],
    unit: WorkUnit,
    *,
    per_unit_cap: int,
    window_end_time: time = END_OF_DAY,
) -> list[TweetRecord]:
    lo, hi = window_bounds(unit, window_end_time)

    dated: list[tuple[datetime, Mapping[str, Any]]] = []
    for raw in raw_items:
        if not isinstance(raw, Mapping):
            continue
        ts = parse_timestamp(resolve(raw, "timestamp"))
        if ts is None or ts < lo or ts > hi:
            continue
        dated.append((ts, raw))

    # list.sort is stable even with reverse=True
    dated.sort(key=lambda pair: pair[0], reverse=True)

    return [_to_record(ts, raw, unit) for ts, raw in dated[: max(per_unit_cap, 0)]]


def _to_record(ts: datetime, raw: Mapping[str, Any], unit: WorkUnit) -> TweetRecord:
    text = resolve(raw, "text", default="")
    url = raw.get("url") or status_url(unit.candidate, resolve(raw, "id"))
    return TweetRecord(
        candidate=unit.candidate,
        election_year=unit.election_year,
        date=ts.date().isoformat(),
        text=str(text),
        url=str(url),
    )
