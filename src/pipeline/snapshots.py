"""Pipeline snapshots: a frozen capture of the client list plus per-client change flags.

A new snapshot is always diffed against the immediately preceding one.
Clients are matched by name (exact, case-sensitive), or by ``client_id``
when the current client carries one.  A client with no match is new; a
new client never also counts as having changed stage.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from dateutil import parser as dtparser

from src.pipeline.registry import Client, count_by_stage
from src.pipeline.stages import stage_enumeration

logger = logging.getLogger("pulse.pipeline.snapshots")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(moment: datetime) -> str:
    """Render as ``2026-01-05T09:00:00.000Z``, the format the dashboard stores."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse a stored ISO timestamp; naive values are taken as UTC."""
    dt = dtparser.isoparse(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def new_id(prefix: str, moment: datetime) -> str:
    return f"{prefix}-{int(moment.timestamp() * 1000)}-{uuid.uuid4().hex[:6]}"


@dataclass(frozen=True)
class ClientChange(Client):
    previous_stage: str | None = None
    is_new: bool = False
    stage_changed: bool = False

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["previousStage"] = self.previous_stage
        d["isNew"] = self.is_new
        d["stageChanged"] = self.stage_changed
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ClientChange:
        return cls(
            name=d.get("name"),
            stage=d.get("stage"),
            value=d.get("value"),
            category=d.get("category") or "",
            timing=d.get("timing"),
            note=d.get("note"),
            client_id=d.get("clientId"),
            previous_stage=d.get("previousStage") or None,
            is_new=bool(d.get("isNew")),
            stage_changed=bool(d.get("stageChanged")),
        )


@dataclass(frozen=True)
class SnapshotSummary:
    total: int
    by_stage: dict[str, int] = field(default_factory=dict)
    movements: int = 0
    new_clients: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "byStage": dict(self.by_stage),
            "movements": self.movements,
            "newClients": self.new_clients,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SnapshotSummary:
        return cls(
            total=int(d.get("total", 0)),
            by_stage=dict(d.get("byStage") or {}),
            movements=int(d.get("movements", 0)),
            new_clients=int(d.get("newClients", 0)),
        )


@dataclass(frozen=True)
class Snapshot:
    id: str
    date: str
    note: str
    clients: tuple[ClientChange, ...]
    summary: SnapshotSummary
    baseline: bool = False

    @property
    def timestamp(self) -> datetime:
        return parse_timestamp(self.date)

    def find(self, name: str) -> ClientChange | None:
        """First client entry with this exact name."""
        for client in self.clients:
            if client.name == name:
                return client
        return None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "date": self.date,
            "note": self.note,
            "clients": [c.to_dict() for c in self.clients],
            "summary": self.summary.to_dict(),
        }
        if self.baseline:
            d["baseline"] = True
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Snapshot:
        """Rebuild a stored snapshot.  Raises ValueError/TypeError on a malformed entry."""
        if not isinstance(d, dict):
            raise TypeError(f"snapshot must be an object, got {type(d).__name__}")
        date = d.get("date")
        if not isinstance(date, str):
            raise ValueError("snapshot has no date")
        parse_timestamp(date)
        clients = tuple(ClientChange.from_dict(c) for c in d.get("clients") or [] if isinstance(c, dict))
        summary_raw = d.get("summary")
        if isinstance(summary_raw, dict):
            summary = SnapshotSummary.from_dict(summary_raw)
        else:
            summary = _summarize(clients, stage_enumeration())
        return cls(
            id=str(d.get("id") or ""),
            date=date,
            note=d.get("note") or "",
            clients=clients,
            summary=summary,
            baseline=bool(d.get("baseline", False)),
        )


def _summarize(changes: tuple[ClientChange, ...], stages: Iterable[str]) -> SnapshotSummary:
    return SnapshotSummary(
        total=len(changes),
        by_stage=count_by_stage(changes, stages),
        movements=sum(1 for c in changes if c.stage_changed),
        new_clients=sum(1 for c in changes if c.is_new),
    )


def _find_previous(client: Client, previous: tuple[ClientChange, ...]) -> ClientChange | None:
    if client.client_id is not None:
        for prior in previous:
            if prior.client_id == client.client_id:
                return prior
        # Entries stored before ids existed are still matched by name
        for prior in previous:
            if prior.client_id is None and prior.name == client.name:
                return prior
        return None
    for prior in previous:
        if prior.name == client.name:
            return prior
    return None


def _client_fields(client: Client) -> dict[str, Any]:
    return {f.name: getattr(client, f.name) for f in fields(Client)}


def diff_client(client: Client, previous: tuple[ClientChange, ...]) -> ClientChange:
    """Annotate one client against the prior snapshot's entries."""
    match = _find_previous(client, previous)
    if match is None:
        return ClientChange(**_client_fields(client), previous_stage=None, is_new=True, stage_changed=False)
    return ClientChange(
        **_client_fields(client),
        previous_stage=match.stage,
        is_new=False,
        stage_changed=match.stage != client.stage,
    )


def create_snapshot(
    clients: Iterable[Client],
    previous: Snapshot | None,
    note: str = "",
    *,
    stages: Iterable[str] | None = None,
    clock: Clock = utcnow,
) -> Snapshot:
    """Capture ``clients`` as a new snapshot diffed against ``previous``.

    Duplicated names are each diffed against the same prior entry.  With no
    previous snapshot every client is new and the snapshot is a baseline.
    """
    prior = previous.clients if previous is not None else ()
    changes = tuple(diff_client(c, prior) for c in clients)
    now = clock()
    snapshot = Snapshot(
        id=new_id("snapshot", now),
        date=iso_timestamp(now),
        note=note,
        clients=changes,
        summary=_summarize(changes, stages if stages is not None else stage_enumeration()),
        baseline=previous is None,
    )
    logger.debug(
        "Snapshot %s: %d clients, %d movements, %d new",
        snapshot.id, snapshot.summary.total, snapshot.summary.movements, snapshot.summary.new_clients,
    )
    return snapshot
