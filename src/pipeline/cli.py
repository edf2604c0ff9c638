"""Command-line interface for pipeline snapshots and stat trends.

Usage:
    python3 -m src.pipeline.cli snapshot --note "After board call"
    python3 -m src.pipeline.cli history --limit 5
    python3 -m src.pipeline.cli client "Peleman"
    python3 -m src.pipeline.cli movements --limit 20
    python3 -m src.pipeline.cli stats
    python3 -m src.pipeline.cli trends
    python3 -m src.pipeline.cli export > backup.json
    python3 -m src.pipeline.cli import backup.json
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from src.common.config import load_config, setup_logging
from src.dashboard.service import PipelineTracker

_ARROWS = {"up": "+", "down": "-", "neutral": "="}


def _open_tracker(cfg: dict) -> PipelineTracker:
    return PipelineTracker.from_config(cfg)


def cmd_snapshot(args: argparse.Namespace, cfg: dict) -> None:
    snap = _open_tracker(cfg).save_pipeline_snapshot(args.note)
    s = snap.summary
    print(f"Saved {snap.id} at {snap.date}")
    print(f"  {s.total} clients, {s.movements} stage change(s), {s.new_clients} new")
    for client in snap.clients:
        if client.stage_changed:
            print(f"  {client.name}: {client.previous_stage} -> {client.stage}")
        elif client.is_new and not snap.baseline:
            print(f"  {client.name}: new at {client.stage}")


def cmd_history(args: argparse.Namespace, cfg: dict) -> None:
    snapshots = _open_tracker(cfg).get_pipeline_history()[: args.limit]
    if not snapshots:
        print("No pipeline snapshots yet.")
        return
    for snap in snapshots:
        s = snap.summary
        print(f"  {snap.date[:16].replace('T', ' ')}  {snap.note or '-':30s}  "
              f"total={s.total} moves={s.movements} new={s.new_clients}")


def cmd_client(args: argparse.Namespace, cfg: dict) -> None:
    name = " ".join(args.name)
    history = _open_tracker(cfg).get_client_history(name)
    if not history:
        print(f"No history for: {name}")
        return
    print(f"History for {name}:\n")
    for entry in history:
        marker = " *" if entry["stageChanged"] else ""
        print(f"  {entry['date'][:10]}  {entry['stage'] or '?':12s} {entry['value'] or ''!s:10s}{marker}")


def cmd_movements(args: argparse.Namespace, cfg: dict) -> None:
    movements = _open_tracker(cfg).get_stage_movements(args.limit)
    if not movements:
        print("No stage movements recorded.")
        return
    for m in movements:
        origin = "new" if m.is_new else m.previous_stage
        print(f"  {m.date[:10]}  {m.client_name}: {origin} -> {m.current_stage}  {m.value or ''}")


def cmd_stats(args: argparse.Namespace, cfg: dict) -> None:
    snap = _open_tracker(cfg).save_stat_snapshot()
    print(f"Saved {snap.id} for week {snap.week}")
    for stat in snap.stats:
        print(f"  {stat.id:14s} {stat.value!s:10s} ({stat.numeric_value:,.0f})")


def cmd_trends(args: argparse.Namespace, cfg: dict) -> None:
    trends = _open_tracker(cfg).get_stat_trends()
    if not trends:
        print("No stats configured.")
        return
    for stat_id, t in sorted(trends.items()):
        prev = f" (was {t.previous_value})" if t.previous_value is not None else ""
        print(f"  {stat_id:14s} {_ARROWS[t.trend]} {t.change_display or '0'}{prev}")


def cmd_export(args: argparse.Namespace, cfg: dict) -> None:
    print(_open_tracker(cfg).export_data())


def cmd_import(args: argparse.Namespace, cfg: dict) -> None:
    raw = Path(args.file).read_text(encoding="utf-8")
    if not _open_tracker(cfg).import_data(raw):
        print(f"Import failed: {args.file}", file=sys.stderr)
        sys.exit(1)
    print(f"Imported {args.file}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="pulse", description="Pipeline and KPI snapshot history")
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")

    sub = parser.add_subparsers(dest="command", required=True)

    p_snap = sub.add_parser("snapshot", help="Record a pipeline snapshot")
    p_snap.add_argument("--note", default="", help="Why the snapshot was taken")

    p_hist = sub.add_parser("history", help="Recent pipeline snapshots, newest first")
    p_hist.add_argument("--limit", type=int, default=10)

    p_client = sub.add_parser("client", help="Stage history of one client")
    p_client.add_argument("name", nargs="+", help="Client name (exact)")

    p_moves = sub.add_parser("movements", help="Recent stage movements")
    p_moves.add_argument("--limit", type=int, default=10)

    sub.add_parser("stats", help="Record this week's stat snapshot")
    sub.add_parser("trends", help="Stat trends against last week")
    sub.add_parser("export", help="Print all history as JSON")

    p_import = sub.add_parser("import", help="Replace history from an export file")
    p_import.add_argument("file", help="Path to an export JSON file")

    args = parser.parse_args(argv)
    cfg = load_config(args.config)
    setup_logging(cfg)

    dispatch = {
        "snapshot": cmd_snapshot,
        "history": cmd_history,
        "client": cmd_client,
        "movements": cmd_movements,
        "stats": cmd_stats,
        "trends": cmd_trends,
        "export": cmd_export,
        "import": cmd_import,
    }
    dispatch[args.command](args, cfg)


if __name__ == "__main__":
    main()
