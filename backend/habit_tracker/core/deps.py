from datetime import datetime, timezone
from fastapi import HTTPException, Request, status

from habit_tracker.core.auth import verify_token


def get_current_user_id(request: Request) -> str:
    """Resolve the caller's user id from the JWT cookie or bearer header"""

    # Cookie first (web UI), then Authorization header (programmatic access)
    access_token = request.cookies.get("access_token")
    if not access_token:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            access_token = auth_header[7:]

    if not access_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_token(access_token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return str(user_id)


def get_now() -> datetime:
    """Current UTC instant; overridden in tests to pin "today"."""
    return datetime.now(timezone.utc)
