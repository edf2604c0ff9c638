"""Shared fixtures: deterministic clocks, sample pipelines, temp data files."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import patch

import httpx
import pytest
import pytest_asyncio

from src.dashboard.storage import FileStorage


class StepClock:
    """Callable clock that advances by ``step`` on every read."""

    def __init__(self, start: datetime, step: timedelta = timedelta(days=1)) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


@pytest.fixture()
def clock() -> StepClock:
    # Monday of ISO week 2, 2026
    return StepClock(datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc))


@pytest.fixture()
def weekly_clock() -> StepClock:
    return StepClock(datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc), step=timedelta(weeks=1))


def sample_pipeline() -> dict[str, Any]:
    return {
        "totalValue": "$1.2M+",
        "closestToClose": [
            {"name": "MagnaFlow", "value": "$36-50K", "stage": "pilot", "timing": "Q1"},
            {"name": "Peleman", "value": "$50K", "stage": "demo", "timing": "Q1"},
        ],
        "inProgress": [
            {"name": "Sunday Dinner", "value": "$500K", "stage": "discovery", "timing": "Q1"},
            {"name": "Checkpoint", "value": "$75K", "stage": "demo", "timing": "Q2"},
        ],
        "partnerships": [
            {"name": "VNTANA", "value": "$50K", "timing": "Q2", "note": "Joint case study"},
        ],
        "closed": [],
        "exploring": "Building relationships with the big four.",
    }


def sample_stats() -> list[dict[str, Any]]:
    return [
        {"id": "pipeline", "value": "$1.2M+", "label": "Pipeline Value"},
        {"id": "prospects", "value": "10+", "label": "Active Prospects"},
        {"id": "partnerships", "value": "3", "label": "Partnerships"},
        {"id": "closed", "value": "0", "label": "Deals Closed"},
    ]


def write_dashboard(path: Path, pipeline: dict[str, Any], stats: list[dict[str, Any]] | None = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({
        "dashboard_data": {"pipeline": pipeline, "stats": stats or []},
    }), encoding="utf-8")


@pytest.fixture()
def data_file(tmp_path: Path) -> Path:
    path = tmp_path / "data" / "dashboard.json"
    write_dashboard(path, sample_pipeline(), sample_stats())
    return path


@pytest.fixture()
def storage(data_file: Path) -> FileStorage:
    return FileStorage(data_file)


@pytest.fixture()
def config_file(tmp_path: Path, data_file: Path) -> Path:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    config_content = f"""
data_file: {data_file}
log_dir: {tmp_path}/logs
log_level: DEBUG
history:
  retention: 52
stats:
  currency: [pipeline]
"""
    config_path = config_dir / "config.yaml"
    config_path.write_text(config_content)
    return config_path


@pytest_asyncio.fixture()
async def client(config_file: Path):
    """Async httpx client bound to the FastAPI app over a temp data file."""
    from src.dashboard import routes

    with patch("src.dashboard.routes.CONFIG_PATH", config_file):
        routes.reset_tracker()
        from src.dashboard.app import app
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            yield c
        routes.reset_tracker()
