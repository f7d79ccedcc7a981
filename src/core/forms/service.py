"""Form service - orchestrates saving, evaluating and submitting forms."""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.db.models import Form, Submission
from .engine import FormRuleEngine
from .models import (
    AnswerMap,
    DefinitionError,
    FormDefinition,
    FormEvaluation,
    RequiredViolation,
)
from .operators import is_blank
from .repository import FormRepository, SubmissionRepository
from .validation import check_submission, validate_definition

logger = logging.getLogger(__name__)


class FormNotFoundError(LookupError):
    """Raised when a form ID does not resolve."""

    def __init__(self, form_id: str):
        super().__init__(f"Form {form_id} not found")
        self.form_id = form_id


class FormValidationError(ValueError):
    """Raised when a definition fails validation and cannot be saved."""

    def __init__(self, errors: List[DefinitionError]):
        super().__init__(f"Form definition has {len(errors)} error(s)")
        self.errors = errors


class SubmissionsClosedError(RuntimeError):
    """Raised when a form no longer accepts submissions."""


class DuplicateSubmissionError(RuntimeError):
    """Raised when a respondent has already submitted a form."""


class SubmissionRejectedError(ValueError):
    """Raised when required fields are blank at submission time."""

    def __init__(self, violations: List[RequiredViolation]):
        super().__init__(f"{len(violations)} required field(s) missing")
        self.violations = violations


class FormService:
    """Service for the form lifecycle: build, evaluate, submit."""

    def __init__(self, db: Session, engine: Optional[FormRuleEngine] = None):
        """Initialize the form service.

        Args:
            db: Database session
            engine: Rule engine (defaults to one built from settings)
        """
        self.db = db
        self.forms = FormRepository(db)
        self.submissions = SubmissionRepository(db)
        self.engine = engine or FormRuleEngine()

    def save_form(
        self,
        definition: FormDefinition,
        owner_id: Optional[str] = None,
        form_id: Optional[str] = None,
        owner_kind: Optional[str] = None,
        owner_ref: Optional[str] = None,
    ) -> Form:
        """Validate and persist a form.

        Args:
            definition: Form definition from the builder
            owner_id: Owner user ID (default user if None)
            form_id: Existing form to replace, or None to create
            owner_kind: Kind of owning record
            owner_ref: ID of the owning record

        Returns:
            Saved form

        Raises:
            FormValidationError: Definition is not saveable
            FormNotFoundError: form_id does not exist
        """
        errors = validate_definition(definition)
        if errors:
            logger.info(f"Refusing to save '{definition.title}': {len(errors)} validation error(s)")
            raise FormValidationError(errors)

        if form_id is None:
            form = self.forms.create(
                definition,
                owner_id=owner_id,
                owner_kind=owner_kind,
                owner_ref=owner_ref,
            )
            logger.info(f"Created form {form.id} ('{form.title}', {definition.field_count} field(s))")
            return form

        form = self.forms.replace_definition(form_id, definition)
        if form is None:
            raise FormNotFoundError(form_id)
        logger.info(f"Updated form {form.id} ('{form.title}', {definition.field_count} field(s))")
        return form

    def get_form(self, form_id: str) -> Form:
        form = self.forms.get_by_id(form_id)
        if form is None:
            raise FormNotFoundError(form_id)
        return form

    def load_form(self, form_id: str) -> FormDefinition:
        """Load a form definition by ID."""
        return self.forms.to_definition(self.get_form(form_id))

    def evaluate(
        self,
        form_id: str,
        answers: AnswerMap,
        changed_field_id: Optional[str] = None,
    ) -> FormEvaluation:
        """Evaluate a stored form against live answers."""
        return self.engine.evaluate(self.load_form(form_id), answers, changed_field_id)

    def submit(
        self,
        form_id: str,
        answers: AnswerMap,
        respondent_id: Optional[str] = None,
    ) -> Submission:
        """Accept a submission after recomputing rules server-side.

        Args:
            form_id: Form ID
            answers: Final answers from the respondent
            respondent_id: Respondent user ID. Anonymous submissions (None)
                are not limited to one per form.

        Returns:
            Persisted submission

        Raises:
            FormNotFoundError: Unknown form
            SubmissionsClosedError: Form is closed
            DuplicateSubmissionError: Identified respondent already submitted
            SubmissionRejectedError: Visible required fields are blank
        """
        form = self.get_form(form_id)
        if not form.allow_submissions:
            raise SubmissionsClosedError(f"Form {form_id} is not accepting submissions")

        if respondent_id is not None and self.submissions.get_by_respondent(form_id, respondent_id) is not None:
            raise DuplicateSubmissionError(f"Respondent has already submitted form {form_id}")

        definition = self.forms.to_definition(form)
        evaluation, violations = check_submission(definition, answers, self.engine)
        if not evaluation.converged:
            logger.warning(f"Form {form_id} has calculate rules that never settle")
        if violations:
            logger.info(f"Rejected submission to form {form_id}: {len(violations)} required field(s) blank")
            raise SubmissionRejectedError(violations)

        known = {field.id for field in definition.iter_fields()}
        stored = {
            field_id: value
            for field_id, value in evaluation.answers.items()
            if field_id in known and not is_blank(value)
        }
        dropped = set(evaluation.answers) - known
        if dropped:
            logger.debug(f"Dropping answers for unknown field(s): {sorted(dropped)}")

        try:
            submission = self.submissions.create(form_id, respondent_id, stored)
        except IntegrityError:
            # A concurrent request from the same respondent won the insert
            self.db.rollback()
            raise DuplicateSubmissionError(f"Respondent has already submitted form {form_id}")
        logger.info(f"Stored submission {submission.id} for form {form_id} ({len(stored)} answer(s))")
        return submission
