"""Shared fixtures for form tests."""

import os

# Keep test runs off the on-disk database
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date

import pytest
from sqlalchemy.orm import sessionmaker

from src.db.database import init_db, make_engine
from src.db.models import Base
from src.core.forms.engine import FormRuleEngine
from src.core.forms.models import (
    Action,
    ActionKind,
    Condition,
    ConditionalRule,
    FieldType,
    FormDefinition,
    FormField,
    FormSection,
    Operator,
)


def rule(field_id, operator, value, kind, target, action_value=None, rule_id=None):
    """Shorthand for building a ConditionalRule in tests."""
    return ConditionalRule(
        id=rule_id,
        when=Condition(field_id=field_id, operator=Operator(operator), value=value),
        then=Action(kind=ActionKind(kind), target=target, value=action_value),
    )


@pytest.fixture
def engine():
    """Rule engine with a fixed clock."""
    return FormRuleEngine(max_passes=10, today=lambda: date(2026, 6, 15))


@pytest.fixture
def pilot_form():
    """Role select plus a licence field shown and required only for pilots."""
    return FormDefinition(
        title="Survey Pilot Application",
        sections=[
            FormSection(
                id="about",
                title="About you",
                fields=[
                    FormField(
                        id="role",
                        label="Role",
                        type=FieldType.SELECT,
                        required=True,
                        options=["pilot", "hobbyist"],
                    ),
                    FormField(id="pilotLicense", label="Pilot licence number"),
                ],
                rules=[
                    rule("role", "is", "pilot", "show", "pilotLicense"),
                    rule("role", "is", "pilot", "require", "pilotLicense"),
                ],
            )
        ],
    )


@pytest.fixture
def db_session():
    """In-memory SQLite session with all tables created."""
    test_engine = make_engine("sqlite://")
    init_db(bind=test_engine)
    Session = sessionmaker(bind=test_engine, autoflush=False, expire_on_commit=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)
        test_engine.dispose()


@pytest.fixture
def client(db_session):
    """API client bound to the in-memory session."""
    from fastapi.testclient import TestClient

    from src.api import deps
    from src.api.app import app

    def override_get_db():
        yield db_session
        db_session.commit()

    app.dependency_overrides[deps.get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
