"""Append-only, retention-capped log of pipeline snapshots.

The log is kept in chronological order (oldest first) because the diff
always runs against the tail.  Display queries return sorted copies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Iterator

from src.pipeline.snapshots import Snapshot, parse_timestamp

logger = logging.getLogger("pulse.pipeline.history")

DEFAULT_RETENTION = 52


@dataclass(frozen=True)
class Movement:
    """A stage transition, or a first appearance when ``is_new``."""

    client_name: str
    previous_stage: str | None
    current_stage: str | None
    date: str
    value: str | None
    is_new: bool = False

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "clientName": self.client_name,
            "previousStage": self.previous_stage,
            "currentStage": self.current_stage,
            "date": self.date,
            "value": self.value,
        }
        if self.is_new:
            d["isNew"] = True
        return d


def _by_date(snapshot: Snapshot) -> datetime:
    return snapshot.timestamp


class HistoryStore:
    """Chronological snapshot log holding at most ``retention`` entries."""

    def __init__(self, snapshots: Iterable[Snapshot] = (), *, retention: int = DEFAULT_RETENTION) -> None:
        if retention < 1:
            raise ValueError(f"retention must be at least 1, got {retention}")
        self._retention = retention
        self._log: list[Snapshot] = list(snapshots)
        self._trim()

    @property
    def retention(self) -> int:
        return self._retention

    def __len__(self) -> int:
        return len(self._log)

    def __iter__(self) -> Iterator[Snapshot]:
        return iter(list(self._log))

    def _trim(self) -> None:
        overflow = len(self._log) - self._retention
        if overflow > 0:
            evicted = self._log[:overflow]
            del self._log[:overflow]
            logger.debug("Evicted %d snapshot(s), oldest %s", len(evicted), evicted[0].date)

    def append(self, snapshot: Snapshot) -> None:
        self._log.append(snapshot)
        self._trim()

    def replace(self, snapshots: Iterable[Snapshot]) -> None:
        self._log = list(snapshots)
        self._trim()

    def latest(self) -> Snapshot | None:
        if not self._log:
            return None
        return self._log[-1]

    def all(self) -> list[Snapshot]:
        """Newest first.  Snapshots sharing a timestamp keep newest-first order."""
        return sorted(reversed(self._log), key=_by_date, reverse=True)

    def client_history(self, name: str) -> list[dict[str, Any]]:
        """One entry per snapshot that lists ``name``, oldest first."""
        history: list[dict[str, Any]] = []
        for snapshot in self._log:
            client = snapshot.find(name)
            if client is None:
                continue
            history.append({
                "date": snapshot.date,
                "stage": client.stage,
                "previousStage": client.previous_stage,
                "value": client.value,
                "stageChanged": client.stage_changed,
            })
        history.sort(key=lambda h: parse_timestamp(h["date"]))
        return history

    def stage_movements(self, limit: int = 10) -> list[Movement]:
        """Most recent stage changes and new clients, newest snapshot first.

        The scan stops as soon as ``limit`` movements are collected, even in
        the middle of a snapshot.  Clients of a baseline snapshot are not
        reported as new: there was nothing before them.
        """
        movements: list[Movement] = []
        if limit <= 0:
            return movements

        for snapshot in self.all():
            for client in snapshot.clients:
                if client.stage_changed:
                    movements.append(Movement(
                        client_name=client.name,
                        previous_stage=client.previous_stage,
                        current_stage=client.stage,
                        date=snapshot.date,
                        value=client.value,
                    ))
                elif client.is_new and not snapshot.baseline:
                    movements.append(Movement(
                        client_name=client.name,
                        previous_stage=None,
                        current_stage=client.stage,
                        date=snapshot.date,
                        value=client.value,
                        is_new=True,
                    ))
                if len(movements) >= limit:
                    return movements
        return movements

    def to_list(self) -> list[dict[str, Any]]:
        """Chronological JSON-ready form, newest at the tail."""
        return [s.to_dict() for s in self._log]
