"""Database module."""

from .database import get_db, init_db, make_engine, engine, SessionLocal
from .models import Base, User, Form, FormSection, FormField, FormRule, Submission, SubmissionValue

__all__ = [
    "get_db",
    "init_db",
    "make_engine",
    "engine",
    "SessionLocal",
    "Base",
    "User",
    "Form",
    "FormSection",
    "FormField",
    "FormRule",
    "Submission",
    "SubmissionValue",
]
