"""
tests/test_criteria.py — Unit Tests for the Criteria Evaluator
===============================================================

Operator boundaries, progress rounding/clamping, and the "malformed
criterion never raises" guarantee.
"""

from __future__ import annotations

import pytest

from devkit.engine.criteria import (
    Criterion,
    MetricSnapshot,
    Range,
    Scalar,
    evaluate,
    progress_percentage,
)
from devkit.errors import InvalidCriterionShape


def _crit(metric="templatesCreated", operator="gte", target=5) -> Criterion:
    return Criterion.from_dict({"metric": metric, "operator": operator, "target": target})


def _snap(**kwargs) -> MetricSnapshot:
    return MetricSnapshot(**kwargs)


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------
class TestOperators:
    def test_gte_at_target(self):
        assert evaluate(_crit(target=5), _snap(templates_created=5)).met

    def test_gte_one_below_target(self):
        assert not evaluate(_crit(target=5), _snap(templates_created=4)).met

    def test_lte(self):
        c = _crit(operator="lte", target=3)
        assert evaluate(c, _snap(templates_created=3)).met
        assert not evaluate(c, _snap(templates_created=4)).met

    def test_eq(self):
        c = _crit(metric="likesReceived", operator="eq", target=10)
        assert evaluate(c, _snap(likes_received=10)).met
        assert not evaluate(c, _snap(likes_received=11)).met

    @pytest.mark.parametrize("value,expected", [
        (9, False), (10, True), (15, True), (20, True), (21, False),
    ])
    def test_between_is_inclusive(self, value, expected):
        c = _crit(metric="totalViews", operator="between", target=[10, 20])
        assert evaluate(c, _snap(total_views=value)).met is expected

    def test_each_metric_is_read_from_its_own_counter(self):
        snap = _snap(
            templates_created=1, copies_received=2, commands_generated=3,
            likes_received=4, total_views=5,
        )
        for metric, expected in [
            ("templatesCreated", 1), ("copiesReceived", 2), ("commandsGenerated", 3),
            ("likesReceived", 4), ("totalViews", 5),
        ]:
            assert evaluate(_crit(metric=metric, target=0), snap).current_value == expected


# ---------------------------------------------------------------------------
# Malformed criteria → not met, never an exception
# ---------------------------------------------------------------------------
class TestMalformedCriteria:
    @pytest.mark.parametrize("raw", [
        {"metric": "templatesCreated", "operator": "between", "target": [20, 10]},
        {"metric": "templatesCreated", "operator": "between", "target": 10},
        {"metric": "templatesCreated", "operator": "gte", "target": [1, 2]},
        {"metric": "templatesCreated", "operator": "gte"},
        {"metric": "templatesCreated", "operator": "gte", "target": "5"},
        {"metric": "templatesCreated", "operator": "approx", "target": 1},
        {"metric": "followers", "operator": "gte", "target": 0},
        {},
        None,
        "not a mapping",
    ])
    def test_reports_not_met(self, raw):
        result = evaluate(Criterion.from_dict(raw), _snap(templates_created=15))
        assert result.met is False

    def test_unknown_metric_reports_zero_progress(self):
        result = evaluate(_crit(metric="followers", target=1), _snap())
        assert result.progress_percentage == 0
        assert result.current_value == 0

    def test_booleans_are_not_numbers(self):
        assert _crit(target=True).target is None


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------
class TestProgress:
    def test_four_of_five_is_eighty(self):
        result = evaluate(_crit(target=5), _snap(templates_created=4))
        assert result.progress_percentage == 80
        assert result.current_value == 4
        assert result.target_value == 5

    def test_clamped_to_hundred(self):
        assert evaluate(_crit(target=5), _snap(templates_created=50)).progress_percentage == 100

    def test_between_measures_against_high_end(self):
        c = _crit(metric="totalViews", operator="between", target=[10, 40])
        result = evaluate(c, _snap(total_views=10))
        assert result.met
        assert result.target_value == 40
        assert result.progress_percentage == 25

    def test_rounds_half_up(self):
        assert progress_percentage(1, 8, met=False) == 13  # 12.5
        assert progress_percentage(1, 3, met=False) == 33

    def test_zero_target(self):
        assert progress_percentage(0, 0, met=True) == 100
        assert progress_percentage(0, 0, met=False) == 0

    def test_lte_met_with_zero_target_reports_full_progress(self):
        result = evaluate(_crit(operator="lte", target=0), _snap())
        assert result.met
        assert result.progress_percentage == 100

    def test_already_earned_fixed_at_hundred(self):
        result = evaluate(_crit(target=50), _snap(templates_created=1), already_earned=True)
        assert result.progress_percentage == 100

    def test_progress_always_in_bounds(self):
        for value in (0, 1, 7, 99, 10_000):
            for target in (0, 1, 3, 100):
                pct = evaluate(_crit(target=target), _snap(templates_created=value))
                assert 0 <= pct.progress_percentage <= 100


# ---------------------------------------------------------------------------
# Strict parse (catalog time)
# ---------------------------------------------------------------------------
class TestStrictParse:
    def test_scalar(self):
        c = Criterion.parse({"metric": "likesReceived", "operator": "gte", "target": 10})
        assert c.target == Scalar(10)

    def test_between_range(self):
        c = Criterion.parse({"metric": "totalViews", "operator": "between", "target": [1, 9]})
        assert c.target == Range(1, 9)
        assert c.to_dict() == {"metric": "totalViews", "operator": "between", "target": [1, 9]}

    @pytest.mark.parametrize("raw", [
        {"metric": "totalViews", "operator": "between", "target": [9, 1]},
        {"metric": "totalViews", "operator": "between", "target": 5},
        {"metric": "totalViews", "operator": "gte", "target": [1, 2]},
        {"metric": "totalViews", "operator": "gte", "target": -1},
        {"metric": "totalViews", "operator": "near", "target": 1},
        {"metric": "stars", "operator": "gte", "target": 1},
        None,
    ])
    def test_rejects_bad_shapes(self, raw):
        with pytest.raises(InvalidCriterionShape):
            Criterion.parse(raw)
