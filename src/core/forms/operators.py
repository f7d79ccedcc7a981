"""Predicate evaluators for the rule operators."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Dict, Optional

from .models import AnswerMap, AnswerValue, Condition, Operator


def as_text(value: AnswerValue) -> str:
    """Coerce an answer or rule value to its comparison text.

    Missing values become the empty string, lists are joined with commas
    and integral numbers lose their trailing ``.0``.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (list, tuple)):
        return ",".join(as_text(item) for item in value)
    return str(value)


def as_number(value: AnswerValue) -> float:
    """Coerce a value to float. Anything that is not a number is NaN."""
    if value is None or isinstance(value, (list, tuple)):
        return math.nan
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return math.nan
    try:
        return float(text)
    except ValueError:
        return math.nan


def is_empty_value(value: AnswerValue) -> bool:
    """Empty means unanswered: None, the empty string or an empty list."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def is_blank(value: AnswerValue) -> bool:
    """Like `is_empty_value` but whitespace-only text also counts as blank."""
    if isinstance(value, str):
        return value.strip() == ""
    return is_empty_value(value)


class OperatorEvaluator(ABC):
    """Abstract base class for operator evaluators."""

    @abstractmethod
    def evaluate(self, current: AnswerValue, expected: Optional[str]) -> bool:
        """Evaluate the operator.

        Args:
            current: Current answer for the watched field (may be None)
            expected: Rule value (may be None for unary operators)

        Returns:
            True if the condition holds
        """
        ...


class IsEvaluator(OperatorEvaluator):
    """Text equality. Lists compare by their comma-joined form."""

    def evaluate(self, current: AnswerValue, expected: Optional[str]) -> bool:
        return as_text(current) == as_text(expected)


class IsNotEvaluator(OperatorEvaluator):
    def evaluate(self, current: AnswerValue, expected: Optional[str]) -> bool:
        return not IsEvaluator().evaluate(current, expected)


class ContainsEvaluator(OperatorEvaluator):
    """Substring test, or membership when the answer is a list."""

    def evaluate(self, current: AnswerValue, expected: Optional[str]) -> bool:
        needle = as_text(expected)
        if isinstance(current, (list, tuple)):
            return any(as_text(item) == needle for item in current)
        return needle in as_text(current)


class DoesNotContainEvaluator(OperatorEvaluator):
    def evaluate(self, current: AnswerValue, expected: Optional[str]) -> bool:
        return not ContainsEvaluator().evaluate(current, expected)


class IsEmptyEvaluator(OperatorEvaluator):
    def evaluate(self, current: AnswerValue, expected: Optional[str]) -> bool:
        return is_empty_value(current)


class IsNotEmptyEvaluator(OperatorEvaluator):
    def evaluate(self, current: AnswerValue, expected: Optional[str]) -> bool:
        return not is_empty_value(current)


class GreaterThanEvaluator(OperatorEvaluator):
    """Numeric comparison. NaN on either side never triggers."""

    def evaluate(self, current: AnswerValue, expected: Optional[str]) -> bool:
        left, right = as_number(current), as_number(expected)
        if math.isnan(left) or math.isnan(right):
            return False
        return left > right


class LessThanEvaluator(OperatorEvaluator):
    """Numeric comparison. NaN on either side never triggers."""

    def evaluate(self, current: AnswerValue, expected: Optional[str]) -> bool:
        left, right = as_number(current), as_number(expected)
        if math.isnan(left) or math.isnan(right):
            return False
        return left < right


# Registry mapping operators to evaluators
OPERATORS: Dict[Operator, OperatorEvaluator] = {
    Operator.IS: IsEvaluator(),
    Operator.IS_NOT: IsNotEvaluator(),
    Operator.CONTAINS: ContainsEvaluator(),
    Operator.DOES_NOT_CONTAIN: DoesNotContainEvaluator(),
    Operator.IS_EMPTY: IsEmptyEvaluator(),
    Operator.IS_NOT_EMPTY: IsNotEmptyEvaluator(),
    Operator.GREATER_THAN: GreaterThanEvaluator(),
    Operator.LESS_THAN: LessThanEvaluator(),
}


def get_operator(operator: Operator) -> Optional[OperatorEvaluator]:
    """Get evaluator for an operator."""
    return OPERATORS.get(operator)


def evaluate_predicate(when: Condition, answers: AnswerMap) -> bool:
    """Evaluate a rule's `when` clause against the current answers.

    Unanswered fields read as None. Never raises for odd answer types.
    """
    evaluator = get_operator(when.operator)
    if evaluator is None:
        return False
    return evaluator.evaluate(answers.get(when.field_id), when.value)
