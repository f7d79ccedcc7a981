"""SQLAlchemy ORM models."""

import uuid
from datetime import datetime

from sqlalchemy import (
    Column,
    String,
    Integer,
    Boolean,
    DateTime,
    Text,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Get current UTC timestamp."""
    return datetime.utcnow()


class User(Base):
    """Form owner or respondent."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    forms = relationship("Form", back_populates="owner", cascade="all, delete-orphan")
    submissions = relationship("Submission", back_populates="respondent", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"


class Form(Base):
    """Form aggregate root."""

    __tablename__ = "forms"

    id = Column(String, primary_key=True, default=generate_uuid)
    owner_id = Column(String, ForeignKey("users.id"), nullable=False)
    owner_kind = Column(String(20), nullable=True)  # 'opportunity', 'event'
    owner_ref = Column(String(64), nullable=True)  # ID of the opportunity/event
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    allow_submissions = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    owner = relationship("User", back_populates="forms")
    sections = relationship(
        "FormSection",
        back_populates="form",
        cascade="all, delete-orphan",
        order_by="FormSection.position",
    )
    submissions = relationship("Submission", back_populates="form", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Form(id={self.id}, title={self.title})>"


class FormSection(Base):
    """Ordered group of fields within a form."""

    __tablename__ = "form_sections"
    __table_args__ = (UniqueConstraint("form_id", "key", name="uq_section_key_per_form"),)

    id = Column(String, primary_key=True, default=generate_uuid)
    form_id = Column(String, ForeignKey("forms.id"), nullable=False)
    key = Column(String(64), nullable=False)  # Builder-assigned id, unique within the form
    position = Column(Integer, nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    # Relationships
    form = relationship("Form", back_populates="sections")
    fields = relationship(
        "FormField",
        back_populates="section",
        cascade="all, delete-orphan",
        order_by="FormField.position",
    )
    rules = relationship(
        "FormRule",
        back_populates="section",
        cascade="all, delete-orphan",
        order_by="FormRule.position",
    )

    def __repr__(self) -> str:
        return f"<FormSection(id={self.id}, key={self.key}, title={self.title})>"


class FormField(Base):
    """Single input definition."""

    __tablename__ = "form_fields"

    id = Column(String, primary_key=True, default=generate_uuid)
    form_id = Column(String, ForeignKey("forms.id"), nullable=False, index=True)
    section_id = Column(String, ForeignKey("form_sections.id"), nullable=False)
    key = Column(String(64), nullable=False)  # Builder-assigned id, unique within the form
    position = Column(Integer, nullable=False)
    label = Column(String(500), nullable=False)
    field_type = Column(String(20), nullable=False)  # e.g., 'short_text', 'select'
    required = Column(Boolean, default=False, nullable=False)
    placeholder = Column(String(500), nullable=True)
    options = Column(Text, nullable=True)  # JSON array

    # Relationships
    section = relationship("FormSection", back_populates="fields")

    def __repr__(self) -> str:
        return f"<FormField(id={self.id}, key={self.key}, type={self.field_type})>"


class FormRule(Base):
    """Conditional rule authored on a section."""

    __tablename__ = "form_rules"

    id = Column(String, primary_key=True, default=generate_uuid)
    section_id = Column(String, ForeignKey("form_sections.id"), nullable=False)
    key = Column(String(64), nullable=True)
    position = Column(Integer, nullable=False)
    when_field = Column(String(64), nullable=False)
    operator = Column(String(20), nullable=False)  # e.g., 'is', 'greater_than'
    when_value = Column(Text, nullable=True)
    action = Column(String(20), nullable=False)  # e.g., 'show', 'calculate'
    target = Column(String(64), nullable=False)
    action_value = Column(Text, nullable=True)

    # Relationships
    section = relationship("FormSection", back_populates="rules")

    def __repr__(self) -> str:
        return f"<FormRule(id={self.id}, when={self.when_field}, action={self.action})>"


class Submission(Base):
    """A respondent's final answers to a form."""

    __tablename__ = "submissions"
    __table_args__ = (UniqueConstraint("form_id", "respondent_id", name="uq_submission_per_respondent"),)

    id = Column(String, primary_key=True, default=generate_uuid)
    form_id = Column(String, ForeignKey("forms.id"), nullable=False, index=True)
    respondent_id = Column(String, ForeignKey("users.id"), nullable=True)  # None for anonymous respondents
    submitted_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    form = relationship("Form", back_populates="submissions")
    respondent = relationship("User", back_populates="submissions")
    values = relationship("SubmissionValue", back_populates="submission", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Submission(id={self.id}, form_id={self.form_id})>"


class SubmissionValue(Base):
    """One answered field of a submission."""

    __tablename__ = "submission_values"

    id = Column(String, primary_key=True, default=generate_uuid)
    submission_id = Column(String, ForeignKey("submissions.id"), nullable=False)
    field_key = Column(String(64), nullable=False)
    value = Column(Text, nullable=False)  # JSON-encoded answer

    # Relationships
    submission = relationship("Submission", back_populates="values")

    def __repr__(self) -> str:
        return f"<SubmissionValue(field={self.field_key})>"
