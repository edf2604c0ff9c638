"""File-backed storage collaborator for the pipeline tracker.

Reads the current pipeline and stats out of the dashboard state file and
persists snapshot logs back into it.  Write failures are logged and
reported as ``False``; they never propagate into the tracker.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Protocol, runtime_checkable

from src.analyzers.stat_trends import StatSnapshot
from src.common.state import (
    DASHBOARD_DATA,
    PIPELINE_HISTORY,
    STAT_HISTORY,
    append_capped,
    get_list,
    load_state,
    save_state,
)
from src.pipeline.history import DEFAULT_RETENTION
from src.pipeline.registry import Client, flatten
from src.pipeline.snapshots import Snapshot
from src.pipeline.stages import DEFAULT_CATEGORIES, CategoryRule

logger = logging.getLogger("pulse.dashboard.storage")


@runtime_checkable
class Storage(Protocol):
    """What the tracker needs from whoever owns persistence."""

    def get_pipeline(self) -> dict[str, Any]: ...

    def get_current_client_list(self) -> list[Client]: ...

    def get_current_stats(self) -> list[dict[str, Any]]: ...

    def load_history(self) -> list[Snapshot]: ...

    def load_stat_history(self) -> list[StatSnapshot]: ...

    def persist_snapshot(self, snapshot: Snapshot) -> bool: ...

    def persist_stat_snapshot(self, snapshot: StatSnapshot) -> bool: ...

    def get_dashboard_data(self) -> dict[str, Any]: ...

    def update_dashboard(
        self,
        *,
        pipeline: dict[str, Any] | None = None,
        stats: list[dict[str, Any]] | None = None,
    ) -> bool: ...

    def replace_histories(
        self,
        *,
        pipeline_history: Iterable[Snapshot] | None = None,
        stat_history: Iterable[StatSnapshot] | None = None,
    ) -> bool: ...


class FileStorage:
    """JSON state file holding dashboard data and both snapshot logs."""

    def __init__(
        self,
        data_file: str | Path,
        *,
        categories: Iterable[CategoryRule] = DEFAULT_CATEGORIES,
        retention: int = DEFAULT_RETENTION,
    ) -> None:
        self._path = Path(data_file)
        self._categories = tuple(categories)
        self._retention = retention

    @property
    def path(self) -> Path:
        return self._path

    def _dashboard(self, state: dict[str, Any]) -> dict[str, Any]:
        data = state.get(DASHBOARD_DATA)
        return data if isinstance(data, dict) else {}

    def _write(self, state: dict[str, Any], what: str) -> bool:
        try:
            save_state(self._path, state)
        except OSError as exc:
            logger.error("Failed to save %s to %s: %s", what, self._path, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Current dashboard data
    # ------------------------------------------------------------------

    def get_dashboard_data(self) -> dict[str, Any]:
        return self._dashboard(load_state(self._path))

    def get_pipeline(self) -> dict[str, Any]:
        pipeline = self.get_dashboard_data().get("pipeline")
        return pipeline if isinstance(pipeline, dict) else {}

    def get_current_client_list(self) -> list[Client]:
        return flatten(self.get_pipeline(), self._categories)

    def get_current_stats(self) -> list[dict[str, Any]]:
        stats = self.get_dashboard_data().get("stats")
        return [s for s in stats if isinstance(s, dict)] if isinstance(stats, list) else []

    def update_dashboard(
        self,
        *,
        pipeline: dict[str, Any] | None = None,
        stats: list[dict[str, Any]] | None = None,
    ) -> bool:
        """Replace the pipeline and/or stats; untouched sections are kept."""
        state = load_state(self._path)
        data = self._dashboard(state)
        if pipeline is not None:
            data["pipeline"] = pipeline
        if stats is not None:
            data["stats"] = stats
        state[DASHBOARD_DATA] = data
        return self._write(state, "dashboard data")

    # ------------------------------------------------------------------
    # Snapshot logs
    # ------------------------------------------------------------------

    def load_history(self) -> list[Snapshot]:
        snapshots: list[Snapshot] = []
        for raw in get_list(load_state(self._path), PIPELINE_HISTORY):
            try:
                snapshots.append(Snapshot.from_dict(raw))
            except (TypeError, ValueError, OverflowError) as exc:
                logger.warning("Skipping malformed pipeline snapshot: %s", exc)
        return snapshots

    def load_stat_history(self) -> list[StatSnapshot]:
        snapshots: list[StatSnapshot] = []
        for raw in get_list(load_state(self._path), STAT_HISTORY):
            try:
                snapshots.append(StatSnapshot.from_dict(raw))
            except (TypeError, ValueError, OverflowError) as exc:
                logger.warning("Skipping malformed stat snapshot: %s", exc)
        return snapshots

    def persist_snapshot(self, snapshot: Snapshot) -> bool:
        state = load_state(self._path)
        append_capped(state, PIPELINE_HISTORY, snapshot.to_dict(), self._retention)
        return self._write(state, "pipeline history")

    def persist_stat_snapshot(self, snapshot: StatSnapshot) -> bool:
        state = load_state(self._path)
        append_capped(state, STAT_HISTORY, snapshot.to_dict(), self._retention)
        return self._write(state, "stat history")

    def replace_histories(
        self,
        *,
        pipeline_history: Iterable[Snapshot] | None = None,
        stat_history: Iterable[StatSnapshot] | None = None,
    ) -> bool:
        state = load_state(self._path)
        if pipeline_history is not None:
            state[PIPELINE_HISTORY] = [s.to_dict() for s in pipeline_history][-self._retention:]
        if stat_history is not None:
            state[STAT_HISTORY] = [s.to_dict() for s in stat_history][-self._retention:]
        return self._write(state, "snapshot histories")
