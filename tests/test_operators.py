"""Tests for rule operators and predicate evaluation."""

import pytest

from src.core.forms.models import Condition, Operator
from src.core.forms.operators import (
    OPERATORS,
    ContainsEvaluator,
    GreaterThanEvaluator,
    IsEmptyEvaluator,
    IsEvaluator,
    LessThanEvaluator,
    as_number,
    as_text,
    evaluate_predicate,
    get_operator,
    is_blank,
)

SAMPLE_VALUES = [None, "", "x", ["a", "b"], "5", "abc"]


class TestPredicateTotality:
    """Every operator returns a bool for every odd combination of inputs."""

    @pytest.mark.parametrize("operator", list(Operator))
    def test_never_raises(self, operator):
        """Should return a bool for any answer/value pair."""
        for current in SAMPLE_VALUES:
            for expected in SAMPLE_VALUES:
                rule_value = None if expected is None else as_text(expected)
                when = Condition(field_id="f", operator=operator, value=rule_value)
                answers = {} if current is None else {"f": current}
                assert isinstance(evaluate_predicate(when, answers), bool)

    def test_every_operator_has_an_evaluator(self):
        """Should register an evaluator for each operator."""
        for operator in Operator:
            assert get_operator(operator) is OPERATORS[operator]


class TestIsOperator:
    """Tests for is / is_not."""

    def test_matches_equal_text(self):
        """Should match when the answer text equals the rule value."""
        when = Condition(field_id="role", operator=Operator.IS, value="pilot")
        assert evaluate_predicate(when, {"role": "pilot"}) is True
        assert evaluate_predicate(when, {"role": "hobbyist"}) is False

    def test_unanswered_field_reads_as_empty_string(self):
        """Should treat a missing answer as the empty string."""
        when = Condition(field_id="role", operator=Operator.IS, value="")
        assert evaluate_predicate(when, {}) is True

    def test_numbers_compare_by_text(self):
        """Should compare numbers by their text, dropping a trailing .0."""
        assert IsEvaluator().evaluate(100, "100") is True
        assert IsEvaluator().evaluate(100.0, "100") is True
        assert IsEvaluator().evaluate(2.5, "2.5") is True

    def test_lists_compare_by_joined_text(self):
        """Should compare list answers by their comma-joined form."""
        assert IsEvaluator().evaluate(["a", "b"], "a,b") is True
        assert IsEvaluator().evaluate(["a", "b"], "a") is False

    def test_is_not_negates(self):
        """Should be the negation of is."""
        when = Condition(field_id="role", operator=Operator.IS_NOT, value="pilot")
        assert evaluate_predicate(when, {"role": "hobbyist"}) is True
        assert evaluate_predicate(when, {"role": "pilot"}) is False


class TestContainsOperator:
    """Tests for contains / does_not_contain."""

    def test_substring_on_text(self):
        """Should test substrings on text answers."""
        assert ContainsEvaluator().evaluate("DJI Mavic 3", "Mavic") is True
        assert ContainsEvaluator().evaluate("DJI Mavic 3", "Avata") is False

    def test_membership_on_lists(self):
        """Should test membership, not substrings, on list answers."""
        assert ContainsEvaluator().evaluate(["mapping", "inspection"], "mapping") is True
        # Partial item text does not count as membership
        assert ContainsEvaluator().evaluate(["mapping", "inspection"], "map") is False

    def test_unanswered_contains_empty_needle(self):
        """Should find the empty string in an unanswered field."""
        when = Condition(field_id="notes", operator=Operator.CONTAINS, value="")
        assert evaluate_predicate(when, {}) is True

    def test_does_not_contain_negates(self):
        """Should be the negation of contains."""
        when = Condition(field_id="skills", operator=Operator.DOES_NOT_CONTAIN, value="fpv")
        assert evaluate_predicate(when, {"skills": ["mapping"]}) is True
        assert evaluate_predicate(when, {"skills": ["fpv"]}) is False


class TestEmptyOperators:
    """Tests for is_empty / is_not_empty."""

    def test_none_empty_string_and_empty_list_are_empty(self):
        """Should treat None, "" and [] as empty."""
        evaluator = IsEmptyEvaluator()
        assert evaluator.evaluate(None, None) is True
        assert evaluator.evaluate("", None) is True
        assert evaluator.evaluate([], None) is True

    def test_zero_and_false_are_answers(self):
        """Should not treat 0 or False as empty."""
        evaluator = IsEmptyEvaluator()
        assert evaluator.evaluate(0, None) is False
        assert evaluator.evaluate(False, None) is False

    def test_is_not_empty(self):
        """Should hold only for answered fields."""
        when = Condition(field_id="email", operator=Operator.IS_NOT_EMPTY)
        assert evaluate_predicate(when, {"email": "a@b.c"}) is True
        assert evaluate_predicate(when, {}) is False


class TestNumericOperators:
    """Tests for greater_than / less_than."""

    def test_greater_than(self):
        """Should compare numerically."""
        assert GreaterThanEvaluator().evaluate("5", "3") is True
        assert GreaterThanEvaluator().evaluate(2, "3") is False

    def test_less_than(self):
        """Should parse padded numeric text."""
        assert LessThanEvaluator().evaluate("2.5", "3") is True
        assert LessThanEvaluator().evaluate(" 10 ", "3") is False

    def test_nan_never_triggers(self):
        """Should be false when either side is not a number."""
        for current in (None, "", "abc", ["1"]):
            assert GreaterThanEvaluator().evaluate(current, "0") is False
            assert LessThanEvaluator().evaluate(current, "0") is False
        assert GreaterThanEvaluator().evaluate("5", "abc") is False
        assert LessThanEvaluator().evaluate("5", None) is False


class TestCoercion:
    """Tests for the coercion helpers."""

    def test_as_text(self):
        """Should render None, floats, bools and lists as comparison text."""
        assert as_text(None) == ""
        assert as_text(3.0) == "3"
        assert as_text(True) == "true"
        assert as_text(["a", 1]) == "a,1"

    def test_as_number(self):
        """Should parse numeric text and booleans."""
        assert as_number("42") == 42.0
        assert as_number(True) == 1.0

    def test_is_blank_treats_whitespace_as_blank(self):
        """Should count whitespace-only text as blank, but not zero."""
        assert is_blank("   ") is True
        assert is_blank("x") is False
        assert is_blank(0) is False
