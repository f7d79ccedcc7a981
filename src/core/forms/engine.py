"""Rule engine for evaluating conditional rules against an answer map."""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Dict, List, Optional, Set

from src.config import get_settings
from .calculations import evaluate_expression
from .models import (
    ActionKind,
    AnswerMap,
    ConditionalRule,
    ElementState,
    FormDefinition,
    FormEvaluation,
)
from .operators import evaluate_predicate

logger = logging.getLogger(__name__)


class FormRuleEngine:
    """Engine for evaluating a form's rules against a respondent's answers.

    The engine is pure: it never mutates the caller's answer map and holds
    no per-respondent state, so one instance can serve every session.
    """

    def __init__(
        self,
        max_passes: Optional[int] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        """Initialize the rule engine.

        Args:
            max_passes: Cap on cascade passes (defaults to settings)
            today: Clock used by age() calculations
        """
        if max_passes is None:
            max_passes = get_settings().max_cascade_passes
        self.max_passes = max(1, max_passes)
        self.today = today or date.today

    def evaluate(
        self,
        form: FormDefinition,
        answers: AnswerMap,
        changed_field_id: Optional[str] = None,
    ) -> FormEvaluation:
        """Run actions to a fixed point and derive visibility and requiredness.

        Args:
            form: Form definition
            answers: Current answers (not modified)
            changed_field_id: Field the respondent just edited. When None,
                every rule is scanned (full evaluation, e.g. at submission).

        Returns:
            Evaluation with element states, updated answers and any jump
        """
        working: AnswerMap = dict(answers)
        rules = list(form.iter_rules())

        if changed_field_id is None:
            triggers: Optional[Set[str]] = None
        else:
            triggers = {changed_field_id}

        jump_to: Optional[str] = None
        passes = 0
        converged = False

        while passes < self.max_passes:
            passes += 1
            written: Set[str] = set()

            for rule in rules:
                if rule.then.kind.is_derivation:
                    continue
                if triggers is not None and rule.when.field_id not in triggers:
                    continue
                if not evaluate_predicate(rule.when, working):
                    continue

                if rule.then.kind == ActionKind.JUMP_TO:
                    if form.get_section(rule.then.target) is not None:
                        jump_to = rule.then.target
                    else:
                        logger.debug(f"Ignoring jump to unknown section {rule.then.target}")
                elif rule.then.kind == ActionKind.CALCULATE:
                    if self._apply_calculation(rule, working):
                        written.add(rule.then.target)

            if not written:
                converged = True
                break
            triggers = written

        if not converged:
            logger.warning(
                f"Form '{form.title}': calculations did not settle after "
                f"{self.max_passes} pass(es); returning last state"
            )

        section_states = {
            section.id: ElementState(
                visible=self.is_visible(form, section.id, working, rules),
                required=False,
            )
            for section in form.sections
        }

        field_states: Dict[str, ElementState] = {}
        for section in form.sections:
            section_visible = section_states[section.id].visible
            for field in section.fields:
                field_states[field.id] = ElementState(
                    visible=section_visible and self.is_visible(form, field.id, working, rules),
                    required=self.is_required(form, field.id, working, rules),
                )

        logger.debug(
            f"Evaluated '{form.title}' in {passes} pass(es): "
            f"{sum(s.visible for s in field_states.values())}/{len(field_states)} field(s) visible"
        )

        return FormEvaluation(
            fields=field_states,
            sections=section_states,
            answers=working,
            jump_to_section_id=jump_to,
            passes=passes,
            converged=converged,
        )

    def is_visible(
        self,
        form: FormDefinition,
        element_id: str,
        answers: AnswerMap,
        rules: Optional[List[ConditionalRule]] = None,
    ) -> bool:
        """Check an element's own visibility (ignores the owning section).

        Visible iff every hide rule targeting it is false and every show
        rule targeting it is true.
        """
        if rules is None:
            rules = list(form.iter_rules())

        for rule in rules:
            if rule.then.target != element_id:
                continue
            if rule.then.kind == ActionKind.HIDE and evaluate_predicate(rule.when, answers):
                return False
            if rule.then.kind == ActionKind.SHOW and not evaluate_predicate(rule.when, answers):
                return False
        return True

    def is_required(
        self,
        form: FormDefinition,
        field_id: str,
        answers: AnswerMap,
        rules: Optional[List[ConditionalRule]] = None,
    ) -> bool:
        """Check a field's effective requiredness.

        Require rules, when present, replace the static flag: the field is
        required iff all of them hold.
        """
        if rules is None:
            rules = list(form.iter_rules())

        require_rules = [
            r for r in rules
            if r.then.kind == ActionKind.REQUIRE and r.then.target == field_id
        ]
        if not require_rules:
            field = form.get_field(field_id)
            return bool(field and field.required)

        return all(evaluate_predicate(r.when, answers) for r in require_rules)

    def _apply_calculation(self, rule: ConditionalRule, answers: AnswerMap) -> bool:
        """Write a calculated value. Returns True if the target changed."""
        if not rule.then.target or rule.then.value is None:
            return False

        value = evaluate_expression(rule.then.value, answers, today=self.today())
        if rule.then.target in answers and answers[rule.then.target] == value:
            return False

        answers[rule.then.target] = value
        return True
