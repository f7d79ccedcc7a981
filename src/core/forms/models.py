"""Pydantic schemas for form definitions, rules and evaluation results."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, Iterator, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


AnswerValue = Union[bool, int, float, str, List[str], None]
AnswerMap = Dict[str, AnswerValue]

# Builder-assigned ids are stored in 64-character key columns
ID_MAX_LENGTH = 64


class FieldType(str, Enum):
    """Supported input types."""

    # Free text
    SHORT_TEXT = "short_text"
    LONG_TEXT = "long_text"
    EMAIL = "email"
    PHONE = "phone"
    LINK = "link"

    # Scalars
    NUMBER = "number"
    DATE = "date"
    TIME = "time"

    # Choice types (need options)
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    MULTI_SELECT = "multi_select"

    # Other
    FILE = "file"
    HIDDEN = "hidden"  # Not rendered; holds calculated values

    def description(self) -> str:
        """Human-readable description of the field type."""
        descriptions = {
            self.SHORT_TEXT: "Single line of text",
            self.LONG_TEXT: "Multi-line text",
            self.EMAIL: "Email address",
            self.PHONE: "Phone number",
            self.LINK: "URL",
            self.NUMBER: "Numeric value",
            self.DATE: "Calendar date (YYYY-MM-DD)",
            self.TIME: "Time of day",
            self.SELECT: "Dropdown, one option",
            self.RADIO: "Multiple choice, one option",
            self.CHECKBOX: "Checkbox group, any number of options",
            self.MULTI_SELECT: "Multi-select, any number of options",
            self.FILE: "File upload reference",
            self.HIDDEN: "Hidden value, usually calculated",
        }
        return descriptions.get(self, "Unknown field type")

    @property
    def is_choice(self) -> bool:
        """Check if this field type needs a list of options."""
        return self in (self.SELECT, self.RADIO, self.CHECKBOX, self.MULTI_SELECT)

    @property
    def is_multi_valued(self) -> bool:
        """Check if answers to this field are lists."""
        return self in (self.CHECKBOX, self.MULTI_SELECT)


class Operator(str, Enum):
    """Comparison operators available in a rule's `when` clause."""

    IS = "is"
    IS_NOT = "is_not"
    CONTAINS = "contains"
    DOES_NOT_CONTAIN = "does_not_contain"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"

    @property
    def needs_value(self) -> bool:
        """Check if the operator compares against a rule value."""
        return self not in (self.IS_EMPTY, self.IS_NOT_EMPTY)


class ActionKind(str, Enum):
    """Actions available in a rule's `then` clause."""

    SHOW = "show"
    HIDE = "hide"
    REQUIRE = "require"
    JUMP_TO = "jump_to"
    CALCULATE = "calculate"

    def description(self) -> str:
        """Human-readable description of the action."""
        descriptions = {
            self.SHOW: "Show the target only while the condition holds",
            self.HIDE: "Hide the target while the condition holds",
            self.REQUIRE: "Require the target field while the condition holds",
            self.JUMP_TO: "Navigate to the target section",
            self.CALCULATE: "Write a computed value into the target field",
        }
        return descriptions.get(self, "Unknown action")

    @property
    def is_derivation(self) -> bool:
        """Derivations are recomputed from answers and never mutate them."""
        return self in (self.SHOW, self.HIDE, self.REQUIRE)


class Condition(BaseModel):
    """The `when` half of a rule."""

    field_id: str = Field(..., min_length=1, max_length=ID_MAX_LENGTH)
    operator: Operator
    value: Optional[str] = None

    @field_validator("value", mode="before")
    @classmethod
    def value_as_text(cls, v):
        # Builders send numbers for numeric comparisons
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class Action(BaseModel):
    """The `then` half of a rule."""

    kind: ActionKind
    target: str = Field(..., min_length=1, max_length=ID_MAX_LENGTH)
    value: Optional[str] = Field(None, description="Expression for calculate, e.g. sum(a, b) or age(dob)")

    @field_validator("value", mode="before")
    @classmethod
    def value_as_text(cls, v):
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class ConditionalRule(BaseModel):
    """A single when/then statement."""

    id: Optional[str] = Field(None, max_length=ID_MAX_LENGTH)
    when: Condition
    then: Action


class FormField(BaseModel):
    """A single input definition."""

    id: str = Field(..., min_length=1, max_length=ID_MAX_LENGTH)
    label: str = Field("", max_length=500)
    type: FieldType = FieldType.SHORT_TEXT
    required: bool = False
    placeholder: Optional[str] = Field(None, max_length=500)
    options: List[str] = Field(default_factory=list)


class FormSection(BaseModel):
    """Ordered container of fields plus the rules authored on it."""

    id: str = Field(..., min_length=1, max_length=ID_MAX_LENGTH)
    title: str = Field("", max_length=200)
    description: Optional[str] = None
    fields: List[FormField] = Field(default_factory=list)
    rules: List[ConditionalRule] = Field(default_factory=list)


class FormDefinition(BaseModel):
    """Top-level form aggregate."""

    title: str = Field("Application Form", max_length=200)
    description: Optional[str] = None
    sections: List[FormSection] = Field(default_factory=list)
    allow_submissions: bool = True

    def iter_fields(self) -> Iterator[FormField]:
        """Yield every field in render order."""
        for section in self.sections:
            yield from section.fields

    def iter_rules(self) -> Iterator[ConditionalRule]:
        """Yield every rule, section by section, in authoring order."""
        for section in self.sections:
            yield from section.rules

    def get_field(self, field_id: str) -> Optional[FormField]:
        for field in self.iter_fields():
            if field.id == field_id:
                return field
        return None

    def get_section(self, section_id: str) -> Optional[FormSection]:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def section_of(self, field_id: str) -> Optional[FormSection]:
        """Find the section that owns a field."""
        for section in self.sections:
            if any(f.id == field_id for f in section.fields):
                return section
        return None

    @property
    def field_count(self) -> int:
        return sum(len(s.fields) for s in self.sections)


class ElementState(BaseModel):
    """Derived state of a field or section."""

    visible: bool = True
    required: bool = False


class FormEvaluation(BaseModel):
    """Result of one evaluator run over a form and an answer map."""

    fields: Dict[str, ElementState] = Field(default_factory=dict)
    sections: Dict[str, ElementState] = Field(default_factory=dict)
    answers: AnswerMap = Field(default_factory=dict)
    jump_to_section_id: Optional[str] = None
    passes: int = 0
    converged: bool = True

    def visible_field_ids(self) -> List[str]:
        return [fid for fid, state in self.fields.items() if state.visible]


class DefinitionError(BaseModel):
    """A definition-time problem reported back to the builder."""

    element_id: Optional[str] = None
    code: str
    message: str


class RequiredViolation(BaseModel):
    """A visible, required field left blank at submission time."""

    field_id: str
    reason: Literal["required"] = "required"


# =============================================================================
# API schemas
# =============================================================================


class FormCreate(FormDefinition):
    """Schema for creating or replacing a form."""

    owner_kind: Optional[str] = Field(None, max_length=20, description="opportunity, event, ...")
    owner_ref: Optional[str] = Field(None, max_length=64, description="ID of the owning opportunity/event")


class FormResponse(FormDefinition):
    """Schema for form response."""

    id: str
    owner_id: str
    owner_kind: Optional[str] = None
    owner_ref: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class FormSummary(BaseModel):
    """Compact form listing entry."""

    id: str
    title: str
    allow_submissions: bool
    field_count: int
    submission_count: int
    updated_at: datetime


class EvaluateRequest(BaseModel):
    """Schema for a live evaluation request from the renderer."""

    answers: AnswerMap = Field(default_factory=dict)
    changed_field_id: Optional[str] = None


class SubmissionCreate(BaseModel):
    """Schema for submitting answers."""

    answers: AnswerMap = Field(default_factory=dict)


class SubmissionResponse(BaseModel):
    """Schema for submission response."""

    id: str
    form_id: str
    respondent_id: Optional[str] = None
    submitted_at: datetime
    answers: AnswerMap


class ImportResult(BaseModel):
    """Decoded legacy form plus the problems that block saving it."""

    source: str
    form: FormDefinition
    errors: List[DefinitionError] = Field(default_factory=list)
