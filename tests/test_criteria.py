"""Tests for criteria scoring."""

import pytest

from iterforge.criteria import (
    CriteriaMode,
    CriterionDefinition,
    CriterionResult,
    calculate_score,
    is_complete,
)


def result(passed, weight=1.0, required=False, name="c"):
    return CriterionResult(criterion_id=name, name=name, passed=passed, weight=weight, required=required)


class TestCalculateScore:
    """Tests for calculate_score."""

    @pytest.mark.parametrize("mode", list(CriteriaMode))
    def test_empty_is_zero(self, mode):
        assert calculate_score([], mode) == 0.0

    def test_all(self):
        assert calculate_score([result(True), result(True)], CriteriaMode.ALL) == 1.0
        assert calculate_score([result(True), result(False)], CriteriaMode.ALL) == 0.0

    def test_any(self):
        assert calculate_score([result(False), result(True)], CriteriaMode.ANY) == 1.0
        assert calculate_score([result(False), result(False)], CriteriaMode.ANY) == 0.0

    def test_weighted(self):
        results = [result(True, weight=3), result(False, weight=1)]
        assert calculate_score(results, CriteriaMode.WEIGHTED) == 0.75

    def test_weighted_zero_weight(self):
        assert calculate_score([result(True, weight=0)], CriteriaMode.WEIGHTED) == 0.0


class TestIsComplete:
    """Tests for is_complete."""

    def test_all_mode(self):
        assert is_complete([result(True), result(True)], CriteriaMode.ALL, 0.8)
        assert not is_complete([result(True), result(False)], CriteriaMode.ALL, 0.8)

    def test_any_mode(self):
        assert is_complete([result(False), result(True)], CriteriaMode.ANY, 0.8)

    def test_weighted_threshold(self):
        results = [result(True, weight=4), result(False, weight=1)]
        assert is_complete(results, CriteriaMode.WEIGHTED, 0.8)
        assert not is_complete(results, CriteriaMode.WEIGHTED, 0.9)

    def test_required_must_pass(self):
        results = [result(True), result(False, required=True, name="tests")]
        assert not is_complete(results, CriteriaMode.ANY, 0.0)


class TestSerialization:
    """Definition and result dictionaries."""

    def test_definition_defaults(self):
        definition = CriterionDefinition.from_dict({"id": "tests", "config": {"command": "pytest"}})
        assert definition.name == "tests"
        assert definition.type == "command"
        assert definition.weight == 1.0
        assert not definition.required
        assert CriterionDefinition.from_dict(definition.to_dict()) == definition

    def test_for_criterion(self):
        definition = CriterionDefinition(id="lint", name="Lint", type="command", weight=2.0, required=True)
        res = CriterionResult.for_criterion(definition, passed=False, error="3 warnings")
        assert res.criterion_id == "lint"
        assert res.weight == 2.0
        assert res.required
        assert res.to_dict()["criterionId"] == "lint"
        assert CriterionResult.from_dict(res.to_dict()) == res
