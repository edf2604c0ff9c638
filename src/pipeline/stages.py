"""
Canonical pipeline stages and the category -> stage assignment table.

Stages are plain strings in funnel order.  Pipeline buckets that are not
part of the funnel (partnerships, closed deals) force a synthetic stage
on every deal they hold.  Adding a bucket only needs a new CategoryRule.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

logger = logging.getLogger("pulse.pipeline.stages")

DISCOVERY = "discovery"
DEMO = "demo"
VALIDATION = "validation"
PILOT = "pilot"
CLOSED = "closed"

# Synthetic stage for the partnerships bucket
PARTNERSHIP = "partnership"

# Ordered funnel
PIPELINE_STAGES: tuple[str, ...] = (
    DISCOVERY,
    DEMO,
    VALIDATION,
    PILOT,
    CLOSED,
)


@dataclass(frozen=True)
class CategoryRule:
    """How deals in one pipeline bucket become clients.

    ``stage`` of None keeps each deal's own stage; any other value is
    forced onto every deal in the bucket.
    """

    key: str
    stage: str | None = None
    keep_note: bool = False


DEFAULT_CATEGORIES: tuple[CategoryRule, ...] = (
    CategoryRule("closestToClose"),
    CategoryRule("inProgress"),
    CategoryRule("partnerships", stage=PARTNERSHIP, keep_note=True),
    CategoryRule("closed", stage=CLOSED, keep_note=True),
)


def stage_enumeration(
    stages: Iterable[str] = PIPELINE_STAGES,
    categories: Iterable[CategoryRule] = DEFAULT_CATEGORIES,
) -> tuple[str, ...]:
    """Funnel stages followed by any synthetic stage the categories force."""
    ordered: list[str] = list(stages)
    for rule in categories:
        if rule.stage and rule.stage not in ordered:
            ordered.append(rule.stage)
    return tuple(ordered)


def categories_from_config(entries: list[dict[str, Any]] | None) -> tuple[CategoryRule, ...]:
    """Build the category table from the ``pipeline.categories`` config list."""
    if not entries:
        return DEFAULT_CATEGORIES
    rules: list[CategoryRule] = []
    for entry in entries:
        if isinstance(entry, str):
            rules.append(CategoryRule(entry))
            continue
        if not isinstance(entry, dict) or not entry.get("key"):
            logger.warning("Ignoring malformed pipeline category entry: %r", entry)
            continue
        rules.append(CategoryRule(
            key=str(entry["key"]),
            stage=entry.get("stage"),
            keep_note=bool(entry.get("keep_note", False)),
        ))
    return tuple(rules) or DEFAULT_CATEGORIES
