from typing import Generator

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from hrdesk.db.session import SessionLocal
from hrdesk.db.models import User
from hrdesk.core.security import decode_token
from hrdesk.core.workflow.engine import WorkflowEngine
from hrdesk.services.storage import LocalFileStorage

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    db: Session = Depends(get_db),
    token: str = Depends(oauth2_scheme),
) -> User:
    """Get current authenticated user from the bearer JWT."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if token:
        user_id = decode_token(token)
        if user_id:
            user = db.get(User, user_id)
            if user and user.is_active:
                return user

    raise credentials_exception


def get_storage() -> LocalFileStorage:
    """File storage dependency."""
    return LocalFileStorage.from_settings()


def get_workflow_engine(
    db: Session = Depends(get_db),
    storage: LocalFileStorage = Depends(get_storage),
) -> WorkflowEngine:
    return WorkflowEngine(db, storage=storage)
