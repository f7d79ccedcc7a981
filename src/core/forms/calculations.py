"""Expression mini-language used by `calculate` rules.

Two functions are understood:

    sum(a, b, ...)   numeric sum of the referenced answers, blanks count as 0
    age(field)       whole years between a date answer and today

Any other text is a literal and is written to the target as-is.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import List, Optional

from .models import AnswerMap, AnswerValue
from .operators import as_number

_CALL_RE = re.compile(r"^\s*(sum|age)\s*\((.*)\)\s*$", re.IGNORECASE | re.DOTALL)


def parse_call(expression: str) -> Optional[tuple]:
    """Split `name(arg, ...)` into (name, [args]). None for literals."""
    match = _CALL_RE.match(expression or "")
    if not match:
        return None
    name = match.group(1).lower()
    args = [a.strip() for a in match.group(2).split(",") if a.strip()]
    return name, args


def referenced_fields(expression: str) -> List[str]:
    """Field ids an expression reads from."""
    call = parse_call(expression)
    return call[1] if call else []


def parse_date(value: AnswerValue) -> Optional[date]:
    """Parse an ISO date or datetime answer. None if unparseable."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def whole_years_between(start: date, end: date) -> int:
    years = end.year - start.year
    if (end.month, end.day) < (start.month, start.day):
        years -= 1
    return years


def _sum(args: List[str], answers: AnswerMap):
    total = 0.0
    for field_id in args:
        number = as_number(answers.get(field_id))
        if not math.isnan(number):
            total += number
    if total.is_integer():
        return int(total)
    return total


def _age(args: List[str], answers: AnswerMap, today: date):
    if len(args) != 1:
        return ""
    born = parse_date(answers.get(args[0]))
    if born is None:
        return ""
    return whole_years_between(born, today)


def evaluate_expression(
    expression: Optional[str],
    answers: AnswerMap,
    today: Optional[date] = None,
) -> AnswerValue:
    """Evaluate a calculate expression.

    Args:
        expression: Expression text from the rule's `then.value`
        answers: Current answers
        today: Evaluation date for age() (defaults to today)

    Returns:
        Computed value, "" when age() cannot resolve its date, or the
        expression itself when it is a literal
    """
    if expression is None:
        return None

    call = parse_call(expression)
    if call is None:
        return expression

    name, args = call
    if name == "sum":
        return _sum(args, answers)
    return _age(args, answers, today or date.today())
