"""Dashboard state file: pipeline data plus the snapshot logs, in one JSON file.

Layout::

    {
      "dashboard_data":   {"pipeline": {...}, "stats": [...]},
      "pipeline_history": [ ...snapshots, oldest first... ],
      "stat_history":     [ ...stat snapshots, oldest first... ]
    }
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger("pulse.state")

DASHBOARD_DATA = "dashboard_data"
PIPELINE_HISTORY = "pipeline_history"
STAT_HISTORY = "stat_history"


def load_state(state_path: Path | str) -> dict[str, Any]:
    """Load the full state dict. Returns empty dict if file missing or unreadable."""
    path = Path(state_path)
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as fh:
            state = json.load(fh)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Corrupt state file %s, starting empty: %s", path, exc)
        return {}
    if not isinstance(state, dict):
        logger.warning("State file %s does not hold an object, starting empty", path)
        return {}
    return state


def save_state(state_path: Path | str, state: dict[str, Any]) -> None:
    """Atomically write the full state dict (tmp file + rename)."""
    path = Path(state_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    with open(tmp, "w", encoding="utf-8") as fh:
        json.dump(state, fh, indent=2, default=str)
    tmp.replace(path)


def get_list(state: dict[str, Any], key: str) -> list[Any]:
    """A list-valued section, or [] when absent or of the wrong type."""
    value = state.get(key)
    return value if isinstance(value, list) else []


def append_capped(state: dict[str, Any], key: str, entry: Any, cap: int) -> list[Any]:
    """Append ``entry`` to a list section, keeping only the newest ``cap`` items."""
    items = get_list(state, key)
    items.append(entry)
    if len(items) > cap:
        items = items[-cap:]
    state[key] = items
    return items
