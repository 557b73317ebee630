"""
Tests for per-phase key extraction, prefixing and composite-key merge.
"""
from __future__ import annotations

import pytest

from gridfeed.acquisition.merge import merge_by_key, prefix_phase, row_key, to_number


class TestToNumber:
    @pytest.mark.parametrize(
        "value,expected",
        [("12", 12), ("1.5", 1.5), (" 3.0 ", 3), (7, 7), (0, 0), ("-0.25", -0.25)],
    )
    def test_numbers(self, value, expected):
        assert to_number(value) == expected

    @pytest.mark.parametrize("value", [None, "", "abc", "nan", "inf", True])
    def test_non_numbers(self, value):
        assert to_number(value) is None

    def test_integral_values_are_int(self):
        assert isinstance(to_number("2.0"), int)


class TestRowKey:
    def test_alternate_column_names(self):
        assert row_key({"yr": "2024", "wk": "3", "team_abbr": "kc"}) == (2024, 3, "KC")
        assert row_key({"year": 2023, "week": 1, "TEAM": "buf"}) == (2023, 1, "BUF")

    def test_blank_values_fall_through(self):
        assert row_key({"season": "", "year": "2024", "week": "2", "team": "", "team_abbr": "DAL"}) == (2024, 2, "DAL")

    def test_incomplete_key(self):
        assert row_key({"season": "2024", "week": "1"}) is None
        assert row_key({"season": "x", "week": "1", "team": "KC"}) is None


class TestPrefixAndMerge:
    def test_prefix_keeps_numeric_value_columns(self):
        rows = [
            {"season": "2024", "week": "1", "team": "kc", "Carries": "25", "pfr_game_id": "abc", "team_name": "Chiefs"},
            {"season": "2024", "team": "KC", "carries": "9"},
        ]
        assert prefix_phase(rows, "rush") == [{"season": 2024, "week": 1, "team": "KC", "rush_carries": 25}]

    def test_merge_joins_phases_on_key(self):
        rush = prefix_phase([{"season": 2024, "week": 1, "team": "KC", "att": 20}], "rush")
        passing = prefix_phase(
            [{"season": 2024, "week": 1, "team": "KC", "att": 30}, {"season": 2024, "week": 1, "team": "BUF", "att": 28}],
            "pass",
        )

        merged = merge_by_key(rush, passing)

        assert merged == {
            "2024|1|KC": {"season": 2024, "week": 1, "team": "KC", "rush_att": 20, "pass_att": 30},
            "2024|1|BUF": {"season": 2024, "week": 1, "team": "BUF", "pass_att": 28},
        }

    def test_later_phase_overwrites_clashing_columns(self):
        first = [{"season": 2024, "week": 1, "team": "KC", "x_y": 1}]
        second = [{"season": 2024, "week": 1, "team": "KC", "x_y": 2}]
        assert merge_by_key(first, second)["2024|1|KC"]["x_y"] == 2

    def test_no_phases(self):
        assert merge_by_key() == {}
