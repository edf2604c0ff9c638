from __future__ import annotations

import pytest

from src.pipeline.money import (
    format_change,
    format_money,
    format_revenue,
    parse_deal_value,
    parse_money,
    parse_stat_value,
)


class TestParseMoney:
    def test_millions(self) -> None:
        assert parse_money("$1.2M") == 1_200_000

    def test_thousands(self) -> None:
        assert parse_money("$50K") == 50_000

    def test_lowercase_suffix(self) -> None:
        assert parse_money("75k") == 75_000
        assert parse_money("2m") == 2_000_000

    @pytest.mark.parametrize("value", ["TBD", "", "-", None, "tbd", "   "])
    def test_unparseable_is_zero(self, value) -> None:
        assert parse_money(value) == 0

    def test_numbers_pass_through(self) -> None:
        assert parse_money(42_000) == 42_000
        assert parse_money(3.5) == 3.5

    def test_plain_amount(self) -> None:
        assert parse_money("$900") == 900

    def test_plus_and_commas_are_ignored(self) -> None:
        assert parse_money("$1,500") == 1500
        assert parse_money("$1.2M+") == 1_200_000

    def test_range_collapses_digits(self) -> None:
        # Non-digit separators are stripped before parsing
        assert parse_money("$36-50K") == 3_650_000

    def test_both_suffixes_multiply_independently(self) -> None:
        assert parse_money("5KM") == 5_000_000_000

    def test_strict_suffix_uses_adjacent_letter_only(self) -> None:
        assert parse_money("5KM", strict_suffix=True) == 5_000
        assert parse_money("$2M", strict_suffix=True) == 2_000_000
        assert parse_money("$900", strict_suffix=True) == 900

    def test_never_raises_on_odd_types(self) -> None:
        assert parse_money(["$5K"]) == 0
        assert parse_money(float("nan")) == 0


class TestFormatMoney:
    def test_formats_millions_with_one_decimal(self) -> None:
        assert format_money(1_200_000) == "$1.2M"

    def test_formats_thousands_without_decimals(self) -> None:
        assert format_money(50_000) == "$50K"

    def test_small_amounts(self) -> None:
        assert format_money(500) == "$500"
        assert format_money(0) == "$0"
        assert format_money(12.5) == "$12.5"


class TestStatValues:
    def test_currency_stat(self) -> None:
        assert parse_stat_value("$1.2M+") == 1_200_000
        assert parse_stat_value("$250K") == 250_000

    def test_counts_and_percentages(self) -> None:
        assert parse_stat_value("10+") == 10
        assert parse_stat_value("45%") == 45
        assert parse_stat_value(3) == 3

    def test_garbage_is_zero(self) -> None:
        assert parse_stat_value("n/a") == 0
        assert parse_stat_value(None) == 0

    def test_format_change(self) -> None:
        assert format_change(250_000, currency=True) == "$250K"
        assert format_change(1_500_000, currency=True) == "$1.5M"
        assert format_change(2.5) == "3"
        assert format_change(4) == "4"


class TestDealValues:
    def test_billion_suffix(self) -> None:
        assert parse_deal_value("$1.5B") == 1_500_000_000

    def test_first_group_wins(self) -> None:
        assert parse_deal_value("$36-50K") == 36

    def test_revenue_label(self) -> None:
        assert format_revenue(0) == "$0"
        assert format_revenue(750) == "$750"
        assert format_revenue(125_000) == "$125K"
