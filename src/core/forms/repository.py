"""Form and submission repositories for CRUD operations."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from src.db.models import (
    Form,
    FormField as FormFieldRow,
    FormRule,
    FormSection as FormSectionRow,
    Submission,
    SubmissionValue,
    User,
)
from src.config import get_settings
from .adapters import decode_string_list
from .models import (
    Action,
    AnswerMap,
    Condition,
    ConditionalRule,
    FieldType,
    FormDefinition,
    FormField,
    FormSection,
)

settings = get_settings()


def _utcnow() -> datetime:
    """Get current UTC time as naive datetime for database compatibility."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_or_create_default_user(db: Session) -> User:
    """Get or create the default user for single-tenant mode."""
    user = db.query(User).filter_by(email=settings.default_user_email).first()
    if not user:
        user = User(email=settings.default_user_email)
        db.add(user)
        db.flush()
    return user


class FormRepository:
    """Repository for Form CRUD operations (saveForm / loadForm)."""

    def __init__(self, db: Session):
        """Initialize repository with database session."""
        self.db = db

    def get_all(self, owner_id: Optional[str] = None) -> List[Form]:
        """Get all forms for an owner.

        Args:
            owner_id: User ID. If None, uses default user.

        Returns:
            List of forms, most recently updated first
        """
        if owner_id is None:
            owner_id = get_or_create_default_user(self.db).id
        return (
            self.db.query(Form)
            .filter_by(owner_id=owner_id)
            .order_by(Form.updated_at.desc())
            .all()
        )

    def get_by_id(self, form_id: str) -> Optional[Form]:
        """Get a form by ID."""
        return self.db.query(Form).filter_by(id=form_id).first()

    def create(
        self,
        definition: FormDefinition,
        owner_id: Optional[str] = None,
        owner_kind: Optional[str] = None,
        owner_ref: Optional[str] = None,
    ) -> Form:
        """Persist a new form with its sections, fields and rules.

        Args:
            definition: Validated form definition
            owner_id: User ID. If None, uses default user.
            owner_kind: Kind of owning record ('opportunity', 'event')
            owner_ref: ID of the owning record

        Returns:
            Created form
        """
        if owner_id is None:
            owner_id = get_or_create_default_user(self.db).id

        form = Form(
            owner_id=owner_id,
            owner_kind=owner_kind,
            owner_ref=owner_ref,
            title=definition.title,
            description=definition.description,
            allow_submissions=definition.allow_submissions,
        )
        self.db.add(form)
        self.db.flush()

        self._write_sections(form, definition)
        self.db.flush()
        return form

    def replace_definition(self, form_id: str, definition: FormDefinition) -> Optional[Form]:
        """Replace a form's content, keeping its identity and submissions.

        Args:
            form_id: Form ID
            definition: Validated form definition

        Returns:
            Updated form or None if not found
        """
        form = self.get_by_id(form_id)
        if not form:
            return None

        form.title = definition.title
        form.description = definition.description
        form.allow_submissions = definition.allow_submissions
        form.updated_at = _utcnow()

        form.sections.clear()
        self.db.flush()

        self._write_sections(form, definition)
        self.db.flush()
        self.db.refresh(form)
        return form

    def set_allow_submissions(self, form_id: str, allow: bool) -> Optional[Form]:
        """Open or close a form for submissions."""
        form = self.get_by_id(form_id)
        if not form:
            return None
        form.allow_submissions = allow
        form.updated_at = _utcnow()
        self.db.flush()
        return form

    def delete(self, form_id: str) -> bool:
        """Delete a form.

        Args:
            form_id: Form ID

        Returns:
            True if deleted, False if not found
        """
        form = self.get_by_id(form_id)
        if not form:
            return False

        self.db.delete(form)
        self.db.flush()
        return True

    def to_definition(self, form: Form) -> FormDefinition:
        """Rebuild the definition aggregate from stored rows."""
        sections = []
        for section_row in form.sections:
            fields = [
                FormField(
                    id=row.key,
                    label=row.label,
                    type=FieldType(row.field_type),
                    required=row.required,
                    placeholder=row.placeholder,
                    options=decode_string_list(row.options),
                )
                for row in section_row.fields
            ]
            rules = [
                ConditionalRule(
                    id=row.key,
                    when=Condition(field_id=row.when_field, operator=row.operator, value=row.when_value),
                    then=Action(kind=row.action, target=row.target, value=row.action_value),
                )
                for row in section_row.rules
            ]
            sections.append(
                FormSection(
                    id=section_row.key,
                    title=section_row.title,
                    description=section_row.description,
                    fields=fields,
                    rules=rules,
                )
            )

        return FormDefinition(
            title=form.title,
            description=form.description,
            sections=sections,
            allow_submissions=form.allow_submissions,
        )

    def _write_sections(self, form: Form, definition: FormDefinition) -> None:
        for s_pos, section in enumerate(definition.sections):
            section_row = FormSectionRow(
                key=section.id,
                position=s_pos,
                title=section.title,
                description=section.description,
            )
            form.sections.append(section_row)

            for f_pos, field in enumerate(section.fields):
                section_row.fields.append(
                    FormFieldRow(
                        form_id=form.id,
                        key=field.id,
                        position=f_pos,
                        label=field.label,
                        field_type=field.type.value,
                        required=field.required,
                        placeholder=field.placeholder,
                        options=json.dumps(field.options) if field.options else None,
                    )
                )

            for r_pos, rule in enumerate(section.rules):
                section_row.rules.append(
                    FormRule(
                        key=rule.id,
                        position=r_pos,
                        when_field=rule.when.field_id,
                        operator=rule.when.operator.value,
                        when_value=rule.when.value,
                        action=rule.then.kind.value,
                        target=rule.then.target,
                        action_value=rule.then.value,
                    )
                )


class SubmissionRepository:
    """Repository for Submission operations (saveSubmission)."""

    def __init__(self, db: Session):
        """Initialize repository with database session."""
        self.db = db

    def create(self, form_id: str, respondent_id: Optional[str], answers: AnswerMap) -> Submission:
        """Persist a submission, one row per answered field.

        Args:
            form_id: Form ID
            respondent_id: User ID of the respondent, None when anonymous
            answers: Answers to store (already filtered by the caller)

        Returns:
            Created submission
        """
        submission = Submission(form_id=form_id, respondent_id=respondent_id)
        for field_key, value in answers.items():
            submission.values.append(
                SubmissionValue(field_key=field_key, value=json.dumps(value))
            )
        self.db.add(submission)
        self.db.flush()
        return submission

    def get_by_id(self, submission_id: str) -> Optional[Submission]:
        """Get a submission by ID."""
        return self.db.query(Submission).filter_by(id=submission_id).first()

    def get_for_form(self, form_id: str) -> List[Submission]:
        """Get all submissions for a form, newest first."""
        return (
            self.db.query(Submission)
            .filter_by(form_id=form_id)
            .order_by(Submission.submitted_at.desc())
            .all()
        )

    def get_by_respondent(self, form_id: str, respondent_id: str) -> Optional[Submission]:
        """Get a respondent's submission to a form, if any."""
        return (
            self.db.query(Submission)
            .filter_by(form_id=form_id, respondent_id=respondent_id)
            .first()
        )

    def count_for_form(self, form_id: str) -> int:
        return self.db.query(Submission).filter_by(form_id=form_id).count()

    @staticmethod
    def to_answers(submission: Submission) -> AnswerMap:
        """Decode stored values back into an answer map."""
        return {row.field_key: json.loads(row.value) for row in submission.values}
