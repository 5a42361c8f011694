"""
FastAPI dependencies. Injected into route handlers.
"""

from fastapi import Header, HTTPException, status

from .auth import AuthenticatedUser, get_current_user
from .database import get_db  # noqa: F401  (session per request, commit on success)


def get_chat_model():
    """The language model used by chat turns. Overridden in tests."""
    from ..services.llm import get_model
    return get_model()


async def require_user(
    authorization: str = Header(default=""),
) -> AuthenticatedUser:
    """
    Resolve authenticated user from Authorization header.
    Returns dev user if FF_USE_AUTH0=false. Rejects with 401 before any
    conversation or agent work happens.
    """
    try:
        return await get_current_user(authorization)
    except PermissionError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
