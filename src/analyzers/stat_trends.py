"""Week-over-week tracking for the dashboard's headline stats.

Each call to :meth:`StatTracker.snapshot` records the display value and a
numeric form of every stat, tagged with its ISO week.  Trends compare the
current values against the second-to-last stored snapshot, i.e. last
week's, since the newest snapshot is usually this week's own.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Iterator

from src.pipeline.history import DEFAULT_RETENTION
from src.pipeline.money import format_change, parse_stat_value
from src.pipeline.snapshots import Clock, iso_timestamp, new_id, parse_timestamp, utcnow

logger = logging.getLogger("pulse.analyzers.stat_trends")

DEFAULT_CURRENCY_STATS = frozenset({"pipeline"})

UP = "up"
DOWN = "down"
NEUTRAL = "neutral"


def week_number(moment: date | datetime) -> int:
    """ISO-8601 week of the year (weeks start Monday, week 1 holds Jan 4th)."""
    return moment.isocalendar()[1]


def _is_finite(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


@dataclass(frozen=True)
class StatValue:
    id: str
    value: Any
    numeric_value: float

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "value": self.value, "numericValue": self.numeric_value}


@dataclass(frozen=True)
class StatSnapshot:
    id: str
    date: str
    week: int
    stats: tuple[StatValue, ...]

    def get(self, stat_id: str) -> StatValue | None:
        for stat in self.stats:
            if stat.id == stat_id:
                return stat
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "week": self.week,
            "stats": [s.to_dict() for s in self.stats],
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> StatSnapshot:
        if not isinstance(d, dict):
            raise TypeError(f"stat snapshot must be an object, got {type(d).__name__}")
        raw_date = d.get("date")
        if not isinstance(raw_date, str):
            raise ValueError("stat snapshot has no date")
        moment = parse_timestamp(raw_date)
        stats = []
        for s in d.get("stats") or []:
            if not isinstance(s, dict) or not s.get("id"):
                continue
            numeric = s.get("numericValue")
            if not _is_finite(numeric):
                numeric = parse_stat_value(s.get("value"))
            stats.append(StatValue(id=s["id"], value=s.get("value"), numeric_value=float(numeric)))
        week = d.get("week")
        return cls(
            id=str(d.get("id") or ""),
            date=raw_date,
            week=int(week) if _is_finite(week) else week_number(moment),
            stats=tuple(stats),
        )


@dataclass(frozen=True)
class Trend:
    trend: str
    change: float
    change_display: str
    previous_value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "trend": self.trend,
            "change": self.change,
            "changeDisplay": self.change_display,
            "previousValue": self.previous_value,
        }


NO_TREND = Trend(trend=NEUTRAL, change=0, change_display="", previous_value=None)


def _stat_pairs(stats: Iterable[Any]) -> Iterator[tuple[str, Any]]:
    """Yield ``(id, value)`` from stat dicts or StatValues, skipping junk."""
    for stat in stats:
        if isinstance(stat, StatValue):
            yield stat.id, stat.value
        elif isinstance(stat, dict) and stat.get("id"):
            yield stat["id"], stat.get("value")
        else:
            logger.debug("Skipping malformed stat entry: %r", stat)


class StatTracker:
    """Retention-capped weekly log of headline stat values.

    Empty until the first :meth:`snapshot`, tracking afterwards; eviction of
    the oldest week is a side effect of appending.
    """

    def __init__(
        self,
        snapshots: Iterable[StatSnapshot] = (),
        *,
        retention: int = DEFAULT_RETENTION,
        currency_stats: Iterable[str] = DEFAULT_CURRENCY_STATS,
        clock: Clock = utcnow,
    ) -> None:
        if retention < 1:
            raise ValueError(f"retention must be at least 1, got {retention}")
        self._retention = retention
        self._currency = frozenset(currency_stats)
        self._clock = clock
        self._log: list[StatSnapshot] = list(snapshots)
        self._trim()

    def __len__(self) -> int:
        return len(self._log)

    @property
    def tracking(self) -> bool:
        return bool(self._log)

    def history(self) -> list[StatSnapshot]:
        """Chronological copy of the log."""
        return list(self._log)

    def latest(self) -> StatSnapshot | None:
        return self._log[-1] if self._log else None

    def previous_week(self) -> StatSnapshot | None:
        """The second-to-last snapshot, or None with fewer than two."""
        if len(self._log) < 2:
            return None
        return self._log[-2]

    def replace(self, snapshots: Iterable[StatSnapshot]) -> None:
        self._log = list(snapshots)
        self._trim()

    def _trim(self) -> None:
        if len(self._log) > self._retention:
            dropped = len(self._log) - self._retention
            self._log = self._log[-self._retention:]
            logger.debug("Dropped %d stat snapshot(s) past retention", dropped)

    def snapshot(self, stats: Iterable[Any]) -> StatSnapshot:
        now = self._clock()
        snap = StatSnapshot(
            id=new_id("stat", now),
            date=iso_timestamp(now),
            week=week_number(now),
            stats=tuple(
                StatValue(id=stat_id, value=value, numeric_value=parse_stat_value(value))
                for stat_id, value in _stat_pairs(stats)
            ),
        )
        self._log.append(snap)
        self._trim()
        logger.debug("Stat snapshot %s (week %d, %d stats)", snap.id, snap.week, len(snap.stats))
        return snap

    def is_currency(self, stat_id: str) -> bool:
        return stat_id in self._currency

    def trends(self, current: Iterable[Any] | None = None) -> dict[str, Trend]:
        """Per-stat trend of ``current`` values against last week's snapshot.

        ``current`` defaults to the newest snapshot's stats.  With fewer
        than two snapshots every stat is neutral with zero change.
        """
        if current is None:
            latest = self.latest()
            current = latest.stats if latest else ()
        previous = self.previous_week()

        trends: dict[str, Trend] = {}
        for stat_id, value in _stat_pairs(current):
            prev = previous.get(stat_id) if previous else None
            if prev is None:
                trends[stat_id] = NO_TREND
                continue

            change = parse_stat_value(value) - prev.numeric_value
            if change > 0:
                direction = UP
            elif change < 0:
                direction = DOWN
            else:
                direction = NEUTRAL
            display = ""
            if direction != NEUTRAL:
                display = format_change(abs(change), currency=self.is_currency(stat_id))
            trends[stat_id] = Trend(
                trend=direction,
                change=change,
                change_display=display,
                previous_value=prev.value or None,
            )
        return trends

    def to_list(self) -> list[dict[str, Any]]:
        return [s.to_dict() for s in self._log]
