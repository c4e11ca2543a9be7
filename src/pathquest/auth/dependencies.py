"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from pathquest.auth.jwt import verify_token
from pathquest.database import get_session
from pathquest.db.models import User
from pathquest.errors import Unauthenticated

_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """
    Extract and verify the bearer JWT, return the User model.

    Raises 401 on a missing, invalid or expired token, or an unknown user.
    """
    if credentials is None:
        raise Unauthenticated("Missing authorization header")

    try:
        payload = verify_token(credentials.credentials, expected_type="access")
        user_id = int(payload["sub"])
    except (jwt.InvalidTokenError, ValueError) as e:
        raise Unauthenticated(str(e) or "Invalid token") from e

    user = await db.get(User, user_id)
    if user is None:
        raise Unauthenticated("User not found")
    return user
