"""Window label parsing: label -> time range, series granularity, baseline scale."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from packages.seismo.models import BaselineScale, Granularity

DEFAULT_WINDOW = "24h"

_ALIASES = {
    "1440m": "24h",
    "10080m": "7d",
    "43200m": "30d",
    "525600m": "1y",
}

# label -> (length, granularity, baseline scale)
_ROLLING: dict[str, tuple[timedelta, Granularity, BaselineScale]] = {
    "5m": (timedelta(minutes=5), Granularity.RAW, BaselineScale.MINUTE),
    "60m": (timedelta(minutes=60), Granularity.RAW, BaselineScale.MINUTE),
    "24h": (timedelta(hours=24), Granularity.RAW, BaselineScale.HOUR),
    "7d": (timedelta(days=7), Granularity.HOUR, BaselineScale.HOUR),
    "30d": (timedelta(days=30), Granularity.DAY, BaselineScale.DAY),
    "1y": (timedelta(days=365), Granularity.DAY, BaselineScale.DAY),
}

_QUARTER_RE = re.compile(r"^q:(\d{4})-Q([1-4])$")


@dataclass(frozen=True)
class WindowSpec:
    label: str
    start: datetime
    end: datetime
    granularity: Granularity
    baseline_scale: BaselineScale

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


def quarter_start(ts: datetime) -> datetime:
    first_month = ((ts.month - 1) // 3) * 3 + 1
    return datetime(ts.year, first_month, 1, tzinfo=timezone.utc)


def canonical_label(label: str) -> str:
    return _ALIASES.get(label, label)


def parse_window(label: str, now: Optional[datetime] = None) -> WindowSpec:
    """
    Resolve a window label against `now`.

    Unknown labels resolve to the 24h window, keeping the caller's label so
    records stay keyed the way they were requested.
    """
    now = now or datetime.now(timezone.utc)
    key = canonical_label(label)

    if key in _ROLLING:
        length, granularity, scale = _ROLLING[key]
        return WindowSpec(key, now - length, now, granularity, scale)

    if key == "1Q":
        return WindowSpec(key, quarter_start(now), now, Granularity.DAY, BaselineScale.DAY)

    match = _QUARTER_RE.match(key)
    if match:
        year = int(match.group(1))
        first_month = (int(match.group(2)) - 1) * 3 + 1
        start = datetime(year, first_month, 1, tzinfo=timezone.utc)
        if first_month == 10:
            end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
        else:
            end = datetime(year, first_month + 3, 1, tzinfo=timezone.utc)
        return WindowSpec(key, start, min(end, now), Granularity.DAY, BaselineScale.DAY)

    length, granularity, scale = _ROLLING[DEFAULT_WINDOW]
    return WindowSpec(label, now - length, now, granularity, scale)
