"""Pipeline and KPI history operations exposed to the dashboard.

``PipelineTracker`` owns the in-memory snapshot logs and hands every new
snapshot to the storage collaborator it was given.  It creates the
"Initial snapshot" baselines itself the first time it sees an empty log,
so a diff never runs against a missing predecessor.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable

from src.analyzers.stat_trends import DEFAULT_CURRENCY_STATS, StatSnapshot, StatTracker, Trend
from src.common.config import resolve_path
from src.dashboard.storage import FileStorage, Storage
from src.pipeline.history import DEFAULT_RETENTION, HistoryStore, Movement
from src.pipeline.money import format_money
from src.pipeline.registry import closed_deals_summary, count_by_stage, total_value
from src.pipeline.snapshots import Clock, Snapshot, create_snapshot, iso_timestamp, utcnow
from src.pipeline.stages import (
    DEFAULT_CATEGORIES,
    PIPELINE_STAGES,
    CategoryRule,
    categories_from_config,
    stage_enumeration,
)

logger = logging.getLogger("pulse.dashboard.service")

INITIAL_SNAPSHOT_NOTE = "Initial snapshot"


class PipelineTracker:
    """Snapshot-and-diff engine for the sales pipeline and headline stats."""

    def __init__(
        self,
        storage: Storage,
        *,
        stages: Iterable[str] = PIPELINE_STAGES,
        categories: Iterable[CategoryRule] = DEFAULT_CATEGORIES,
        retention: int = DEFAULT_RETENTION,
        currency_stats: Iterable[str] = DEFAULT_CURRENCY_STATS,
        strict_suffix: bool = False,
        clock: Clock = utcnow,
        create_baselines: bool = True,
    ) -> None:
        self._storage = storage
        self._stages = tuple(stages)
        self._categories = tuple(categories)
        self._enumeration = stage_enumeration(self._stages, self._categories)
        self._strict_suffix = strict_suffix
        self._clock = clock
        self._history = HistoryStore(storage.load_history(), retention=retention)
        self._stats = StatTracker(
            storage.load_stat_history(),
            retention=retention,
            currency_stats=currency_stats,
            clock=clock,
        )
        logger.info(
            "Loaded %d pipeline snapshot(s) and %d stat snapshot(s)",
            len(self._history), len(self._stats),
        )
        if create_baselines:
            self.ensure_baselines()

    @classmethod
    def from_config(cls, cfg: dict[str, Any], **kwargs: Any) -> PipelineTracker:
        """Build a tracker over the configured data file."""
        retention = cfg["history"]["retention"]
        categories = categories_from_config(cfg["pipeline"].get("categories"))
        storage = FileStorage(resolve_path(cfg["data_file"]), categories=categories, retention=retention)
        return cls(
            storage,
            stages=cfg["pipeline"].get("stages") or PIPELINE_STAGES,
            categories=categories,
            retention=retention,
            currency_stats=cfg["stats"].get("currency") or (),
            strict_suffix=bool(cfg["money"].get("strict_suffix", False)),
            **kwargs,
        )

    @property
    def storage(self) -> Storage:
        return self._storage

    def ensure_baselines(self) -> None:
        if len(self._history) == 0:
            logger.info("No pipeline history yet, recording baseline")
            self.save_pipeline_snapshot(INITIAL_SNAPSHOT_NOTE)
        if len(self._stats) == 0:
            logger.info("No stat history yet, recording baseline")
            self.save_stat_snapshot()

    # ------------------------------------------------------------------
    # Pipeline snapshots
    # ------------------------------------------------------------------

    def save_pipeline_snapshot(self, note: str = "") -> Snapshot:
        clients = self._storage.get_current_client_list()
        snapshot = create_snapshot(
            clients,
            self._history.latest(),
            note,
            stages=self._enumeration,
            clock=self._clock,
        )
        self._history.append(snapshot)
        if not self._storage.persist_snapshot(snapshot):
            logger.warning("Snapshot %s kept in memory only, persistence failed", snapshot.id)
        logger.info(
            "Saved pipeline snapshot %s (%s): %d movement(s), %d new client(s)",
            snapshot.id, note or "no note", snapshot.summary.movements, snapshot.summary.new_clients,
        )
        return snapshot

    def get_pipeline_history(self) -> list[Snapshot]:
        return self._history.all()

    def get_latest_snapshot(self) -> Snapshot | None:
        return self._history.latest()

    def get_client_history(self, name: str) -> list[dict[str, Any]]:
        return self._history.client_history(name)

    def get_stage_movements(self, limit: int = 10) -> list[Movement]:
        return self._history.stage_movements(limit)

    def get_pipeline_stages(self) -> tuple[str, ...]:
        return self._stages

    def get_client_count_by_stage(self) -> dict[str, int]:
        return count_by_stage(self._storage.get_current_client_list(), self._enumeration)

    def get_pipeline_value(self) -> dict[str, Any]:
        total = total_value(self._storage.get_current_client_list(), strict_suffix=self._strict_suffix)
        return {"total": total, "display": format_money(total)}

    def get_closed_deals_stats(self) -> dict[str, Any]:
        return closed_deals_summary(self._storage.get_pipeline())

    # ------------------------------------------------------------------
    # Stat snapshots
    # ------------------------------------------------------------------

    def save_stat_snapshot(self) -> StatSnapshot:
        snapshot = self._stats.snapshot(self._storage.get_current_stats())
        if not self._storage.persist_stat_snapshot(snapshot):
            logger.warning("Stat snapshot %s kept in memory only, persistence failed", snapshot.id)
        logger.info("Saved stat snapshot %s for week %d", snapshot.id, snapshot.week)
        return snapshot

    def get_stat_history(self) -> list[StatSnapshot]:
        return self._stats.history()

    def get_stat_trends(self) -> dict[str, Trend]:
        return self._stats.trends(self._storage.get_current_stats())

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_data(self) -> str:
        return json.dumps({
            "data": self._storage.get_dashboard_data(),
            "pipelineHistory": self._history.to_list(),
            "statHistory": self._stats.to_list(),
            "exportedAt": iso_timestamp(self._clock()),
        }, indent=2)

    def import_data(self, json_string: str) -> bool:
        """Load an export produced by :meth:`export_data`.  Returns False if unusable."""
        try:
            imported = json.loads(json_string)
        except (json.JSONDecodeError, TypeError) as exc:
            logger.error("Failed to import data: %s", exc)
            return False
        if not isinstance(imported, dict):
            logger.error("Failed to import data: expected a JSON object")
            return False

        try:
            snapshots = [Snapshot.from_dict(s) for s in imported.get("pipelineHistory") or []]
            stat_snapshots = [StatSnapshot.from_dict(s) for s in imported.get("statHistory") or []]
        except (TypeError, ValueError, OverflowError) as exc:
            logger.error("Failed to import data: %s", exc)
            return False

        ok = True
        data = imported.get("data")
        if isinstance(data, dict):
            ok = self._storage.update_dashboard(
                pipeline=data.get("pipeline") if isinstance(data.get("pipeline"), dict) else None,
                stats=data.get("stats") if isinstance(data.get("stats"), list) else None,
            )

        # Absent or null logs leave the current history untouched
        has_pipeline = imported.get("pipelineHistory") is not None
        has_stats = imported.get("statHistory") is not None
        if has_pipeline:
            self._history.replace(snapshots)
        if has_stats:
            self._stats.replace(stat_snapshots)
        ok = self._storage.replace_histories(
            pipeline_history=list(self._history) if has_pipeline else None,
            stat_history=self._stats.history() if has_stats else None,
        ) and ok
        logger.info(
            "Imported %d pipeline snapshot(s) and %d stat snapshot(s)",
            len(snapshots), len(stat_snapshots),
        )
        return ok
