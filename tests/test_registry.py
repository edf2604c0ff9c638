from __future__ import annotations

from src.pipeline.registry import Client, closed_deals_summary, count_by_stage, flatten, total_value
from src.pipeline.stages import (
    DEFAULT_CATEGORIES,
    CategoryRule,
    categories_from_config,
    stage_enumeration,
)
from tests.conftest import sample_pipeline


class TestFlatten:
    def test_follows_category_then_insertion_order(self) -> None:
        names = [c.name for c in flatten(sample_pipeline())]
        assert names == ["MagnaFlow", "Peleman", "Sunday Dinner", "Checkpoint", "VNTANA"]

    def test_funnel_categories_keep_deal_stage(self) -> None:
        clients = {c.name: c for c in flatten(sample_pipeline())}
        assert clients["MagnaFlow"].stage == "pilot"
        assert clients["MagnaFlow"].category == "closestToClose"
        assert clients["Checkpoint"].stage == "demo"
        assert clients["Checkpoint"].category == "inProgress"

    def test_partnerships_get_synthetic_stage_and_note(self) -> None:
        vntana = flatten(sample_pipeline())[-1]
        assert vntana.stage == "partnership"
        assert vntana.note == "Joint case study"

    def test_funnel_categories_drop_note(self) -> None:
        pipeline = {"inProgress": [{"name": "A", "stage": "demo", "note": "hidden"}]}
        assert flatten(pipeline)[0].note is None

    def test_closed_bucket_forces_closed_stage(self) -> None:
        pipeline = {"closed": [{"name": "Won Co", "value": "$80K", "stage": "pilot"}]}
        assert flatten(pipeline)[0].stage == "closed"

    def test_duplicates_are_kept(self) -> None:
        pipeline = {
            "closestToClose": [{"name": "Acme", "stage": "pilot"}],
            "inProgress": [{"name": "Acme", "stage": "demo"}],
        }
        clients = flatten(pipeline)
        assert [c.name for c in clients] == ["Acme", "Acme"]
        assert [c.stage for c in clients] == ["pilot", "demo"]

    def test_unknown_buckets_and_junk_are_ignored(self) -> None:
        pipeline = {
            "exploring": "free text",
            "inProgress": [{"name": "A", "stage": "demo"}, "not a deal", None],
            "closestToClose": "oops",
        }
        assert [c.name for c in flatten(pipeline)] == ["A"]

    def test_missing_pipeline(self) -> None:
        assert flatten(None) == []
        assert flatten({}) == []

    def test_custom_category_table(self) -> None:
        table = (CategoryRule("hot"), CategoryRule("advisors", stage="advisor"))
        pipeline = {
            "hot": [{"name": "A", "stage": "pilot"}],
            "advisors": [{"name": "B", "stage": "demo"}],
            "inProgress": [{"name": "C", "stage": "demo"}],
        }
        clients = flatten(pipeline, table)
        assert [(c.name, c.stage) for c in clients] == [("A", "pilot"), ("B", "advisor")]

    def test_deal_id_becomes_client_id(self) -> None:
        pipeline = {"inProgress": [{"id": "c-1", "name": "A", "stage": "demo"}]}
        assert flatten(pipeline)[0].client_id == "c-1"


class TestStageCounts:
    def test_zero_filled_over_enumeration(self) -> None:
        counts = count_by_stage(flatten(sample_pipeline()))
        assert counts == {
            "discovery": 1,
            "demo": 2,
            "validation": 0,
            "pilot": 1,
            "closed": 0,
            "partnership": 1,
        }

    def test_unknown_stage_not_counted(self) -> None:
        counts = count_by_stage([Client(name="X", stage="negotiation")])
        assert sum(counts.values()) == 0
        assert "negotiation" not in counts

    def test_enumeration_appends_synthetic_stages(self) -> None:
        assert stage_enumeration() == ("discovery", "demo", "validation", "pilot", "closed", "partnership")


class TestCategoryConfig:
    def test_defaults_when_absent(self) -> None:
        assert categories_from_config(None) == DEFAULT_CATEGORIES

    def test_builds_rules(self) -> None:
        rules = categories_from_config([
            "hot",
            {"key": "partners", "stage": "partnership", "keep_note": True},
            {"stage": "missing-key"},
        ])
        assert rules == (
            CategoryRule("hot"),
            CategoryRule("partners", stage="partnership", keep_note=True),
        )


class TestValues:
    def test_total_value(self) -> None:
        clients = [Client(name="A", stage="demo", value="$50K"), Client(name="B", stage="demo", value="TBD")]
        assert total_value(clients) == 50_000

    def test_closed_deals_summary(self) -> None:
        pipeline = {"closed": [{"name": "A", "value": "$1.2M"}, {"name": "B", "value": "$300K"}]}
        summary = closed_deals_summary(pipeline)
        assert summary["count"] == 2
        assert summary["totalRevenue"] == 1_500_000
        assert summary["revenueStr"] == "$1.5M"

    def test_closed_deals_summary_empty(self) -> None:
        assert closed_deals_summary({}) == {"count": 0, "totalRevenue": 0, "revenueStr": "$0"}

    def test_closed_bucket_of_wrong_type(self) -> None:
        assert closed_deals_summary({"closed": 5}) == {"count": 0, "totalRevenue": 0, "revenueStr": "$0"}
        assert closed_deals_summary({"closed": {"name": "A"}})["count"] == 0
