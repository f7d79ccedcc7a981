"""Definition-time validation and the submission-time required check."""

from __future__ import annotations

from typing import List, Set, Tuple

from .engine import FormRuleEngine
from .models import (
    ActionKind,
    AnswerMap,
    DefinitionError,
    FormDefinition,
    FormEvaluation,
    RequiredViolation,
)
from .operators import is_blank


def validate_definition(form: FormDefinition) -> List[DefinitionError]:
    """Check a form definition before it is saved.

    Problems are returned, not raised; an empty list means the form can be
    saved.
    """
    errors: List[DefinitionError] = []

    if form.field_count == 0:
        errors.append(
            DefinitionError(code="empty_form", message="Add at least one field before saving")
        )

    section_ids: Set[str] = set()
    field_ids: Set[str] = set()

    for section in form.sections:
        if section.id in section_ids:
            errors.append(
                DefinitionError(
                    element_id=section.id,
                    code="duplicate_id",
                    message=f"Section id '{section.id}' is used more than once",
                )
            )
        section_ids.add(section.id)

        if not section.title.strip():
            errors.append(
                DefinitionError(
                    element_id=section.id,
                    code="missing_title",
                    message="Section title is required",
                )
            )

        for field in section.fields:
            if field.id in field_ids or field.id in section_ids:
                errors.append(
                    DefinitionError(
                        element_id=field.id,
                        code="duplicate_id",
                        message=f"Field id '{field.id}' is used more than once",
                    )
                )
            field_ids.add(field.id)

            if not field.label.strip():
                errors.append(
                    DefinitionError(
                        element_id=field.id,
                        code="missing_label",
                        message="Field label is required",
                    )
                )

            if field.type.is_choice and not any(o.strip() for o in field.options):
                errors.append(
                    DefinitionError(
                        element_id=field.id,
                        code="missing_options",
                        message=f"'{field.label or field.id}' needs at least one option",
                    )
                )

    # A section id declared after a field with the same id
    for section_id in section_ids & field_ids:
        if not any(e.code == "duplicate_id" and e.element_id == section_id for e in errors):
            errors.append(
                DefinitionError(
                    element_id=section_id,
                    code="duplicate_id",
                    message=f"Id '{section_id}' is used by both a field and a section",
                )
            )

    for rule in form.iter_rules():
        rule_ref = rule.id or f"{rule.when.field_id}->{rule.then.target}"

        if rule.when.field_id not in field_ids:
            errors.append(
                DefinitionError(
                    element_id=rule_ref,
                    code="unknown_field",
                    message=f"Rule watches unknown field '{rule.when.field_id}'",
                )
            )

        kind = rule.then.kind
        target = rule.then.target
        if kind in (ActionKind.SHOW, ActionKind.HIDE):
            target_ok = target in field_ids or target in section_ids
        elif kind == ActionKind.JUMP_TO:
            target_ok = target in section_ids
        else:
            target_ok = target in field_ids

        if not target_ok:
            errors.append(
                DefinitionError(
                    element_id=rule_ref,
                    code="unknown_target",
                    message=f"Rule action '{kind.value}' targets unknown element '{target}'",
                )
            )

        if kind == ActionKind.CALCULATE and not (rule.then.value or "").strip():
            errors.append(
                DefinitionError(
                    element_id=rule_ref,
                    code="missing_expression",
                    message="Calculate rules need an expression",
                )
            )

    return errors


def find_required_violations(
    form: FormDefinition,
    evaluation: FormEvaluation,
) -> List[RequiredViolation]:
    """List visible, required fields that are blank in the evaluated answers."""
    violations: List[RequiredViolation] = []
    for field in form.iter_fields():
        state = evaluation.fields.get(field.id)
        if state is None or not (state.visible and state.required):
            continue
        if is_blank(evaluation.answers.get(field.id)):
            violations.append(RequiredViolation(field_id=field.id))
    return violations


def check_submission(
    form: FormDefinition,
    answers: AnswerMap,
    engine: FormRuleEngine,
) -> Tuple[FormEvaluation, List[RequiredViolation]]:
    """Re-run the engine over final answers and collect required violations.

    Client-side visibility state is never trusted; everything is recomputed
    from the submitted answers.
    """
    evaluation = engine.evaluate(form, answers)
    return evaluation, find_required_violations(form, evaluation)
