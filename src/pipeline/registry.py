"""Flatten the bucketed sales pipeline into a single ordered client list."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from src.pipeline.money import format_revenue, parse_deal_value, parse_money
from src.pipeline.stages import (
    CLOSED,
    DEFAULT_CATEGORIES,
    CategoryRule,
    stage_enumeration,
)

logger = logging.getLogger("pulse.pipeline.registry")


@dataclass(frozen=True)
class Client:
    """One named deal as it appears in the pipeline at a point in time.

    ``name`` is the join key across snapshots.  ``client_id`` is an optional
    stable id carried by deals that have one; it survives renames.
    """

    name: str
    stage: str | None
    value: str | None = None
    category: str = ""
    timing: str | None = None
    note: str | None = None
    client_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "name": self.name,
            "stage": self.stage,
            "value": self.value,
            "category": self.category,
            "timing": self.timing,
        }
        if self.note is not None:
            d["note"] = self.note
        if self.client_id is not None:
            d["clientId"] = self.client_id
        return d


def flatten(
    pipeline: dict[str, Any] | None,
    categories: Iterable[CategoryRule] = DEFAULT_CATEGORIES,
) -> list[Client]:
    """Collect every deal of every known bucket, in table order.

    Funnel buckets keep each deal's stage; forced buckets stamp their
    synthetic stage.  A name listed in two buckets yields two clients.
    """
    clients: list[Client] = []
    if not isinstance(pipeline, dict):
        return clients

    for rule in categories:
        deals = pipeline.get(rule.key)
        if not deals:
            continue
        if not isinstance(deals, list):
            logger.debug("Pipeline bucket %s is not a list, skipping", rule.key)
            continue
        for deal in deals:
            if not isinstance(deal, dict):
                logger.debug("Skipping malformed deal in %s: %r", rule.key, deal)
                continue
            clients.append(Client(
                name=deal.get("name"),
                stage=rule.stage or deal.get("stage"),
                value=deal.get("value"),
                category=rule.key,
                timing=deal.get("timing"),
                note=deal.get("note") if rule.keep_note else None,
                client_id=deal.get("id"),
            ))
    return clients


def count_by_stage(clients: Iterable[Client], stages: Iterable[str] | None = None) -> dict[str, int]:
    """Zero-filled client counts over the fixed stage enumeration.

    Clients whose stage is outside the enumeration are not counted.
    """
    counts = {stage: 0 for stage in (stages if stages is not None else stage_enumeration())}
    for client in clients:
        if client.stage in counts:
            counts[client.stage] += 1
    return counts


def total_value(clients: Iterable[Client], *, strict_suffix: bool = False) -> float:
    return sum(parse_money(c.value, strict_suffix=strict_suffix) for c in clients)


def closed_deals_summary(pipeline: dict[str, Any] | None) -> dict[str, Any]:
    """Count and revenue of the ``closed`` bucket."""
    closed = (pipeline or {}).get(CLOSED) or []
    if not isinstance(closed, list):
        logger.debug("Ignoring non-list closed bucket: %r", closed)
        closed = []
    deals = [d for d in closed if isinstance(d, dict)]
    revenue = sum(parse_deal_value(d.get("value") or "0") for d in deals)
    return {
        "count": len(deals),
        "totalRevenue": revenue,
        "revenueStr": format_revenue(revenue),
    }
