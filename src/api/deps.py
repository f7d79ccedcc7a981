"""FastAPI dependencies."""

from __future__ import annotations

from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from src.db.database import get_db as db_context
from src.db.models import User
from src.config import get_settings
from src.core.forms.engine import FormRuleEngine
from src.core.forms.service import FormService

settings = get_settings()


def get_db() -> Generator[Session, None, None]:
    """Yield a database session."""
    with db_context() as db:
        yield db


def get_engine() -> FormRuleEngine:
    """Rule engine shared by all requests (it holds no session state)."""
    return FormRuleEngine(max_passes=settings.max_cascade_passes)


def get_form_service(
    db: Session = Depends(get_db),
    engine: FormRuleEngine = Depends(get_engine),
) -> FormService:
    return FormService(db, engine=engine)


def _get_or_create_user(db: Session, email: str) -> User:
    user = db.query(User).filter_by(email=email).first()
    if not user:
        user = User(email=email, is_active=True)
        db.add(user)
        db.flush()
    return user


def require_api_key(x_api_key: Optional[str] = Header(None)) -> None:
    """Validate the global API key for protected endpoints.

    With no key configured the service runs open (dev mode).
    """
    if not settings.api_key:
        return
    if x_api_key != settings.api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )


def get_current_user(
    db: Session = Depends(get_db),
    x_user_email: Optional[str] = Header(None),
) -> User:
    """Get the acting user.

    Identity is resolved by the host's auth layer in front of this service
    and forwarded in the X-User-Email header. Without it, the default user
    is used.

    Returns:
        User model
    """
    email = (x_user_email or "").strip().lower() or settings.default_user_email
    user = _get_or_create_user(db, email)
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is inactive",
        )
    return user


def get_respondent(
    db: Session = Depends(get_db),
    x_user_email: Optional[str] = Header(None),
) -> Optional[User]:
    """Get the identified respondent, or None for an anonymous submission.

    Public forms accept anonymous entries, so unlike `get_current_user`
    there is no fallback to the default user.
    """
    email = (x_user_email or "").strip().lower()
    if not email:
        return None
    user = _get_or_create_user(db, email)
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is inactive",
        )
    return user
