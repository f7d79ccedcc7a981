"""Conditional form rule engine, validation and persistence."""

from .models import (
    FieldType,
    Operator,
    ActionKind,
    Condition,
    Action,
    ConditionalRule,
    FormField,
    FormSection,
    FormDefinition,
    ElementState,
    FormEvaluation,
    DefinitionError,
    RequiredViolation,
)
from .operators import OPERATORS, get_operator, evaluate_predicate, OperatorEvaluator
from .calculations import evaluate_expression
from .engine import FormRuleEngine
from .validation import validate_definition, find_required_violations, check_submission
from .repository import FormRepository, SubmissionRepository
from .service import (
    FormService,
    FormNotFoundError,
    FormValidationError,
    SubmissionsClosedError,
    DuplicateSubmissionError,
    SubmissionRejectedError,
)

__all__ = [
    "FieldType",
    "Operator",
    "ActionKind",
    "Condition",
    "Action",
    "ConditionalRule",
    "FormField",
    "FormSection",
    "FormDefinition",
    "ElementState",
    "FormEvaluation",
    "DefinitionError",
    "RequiredViolation",
    "OPERATORS",
    "get_operator",
    "evaluate_predicate",
    "OperatorEvaluator",
    "evaluate_expression",
    "FormRuleEngine",
    "validate_definition",
    "find_required_violations",
    "check_submission",
    "FormRepository",
    "SubmissionRepository",
    "FormService",
    "FormNotFoundError",
    "FormValidationError",
    "SubmissionsClosedError",
    "DuplicateSubmissionError",
    "SubmissionRejectedError",
]
