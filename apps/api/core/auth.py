"""
Bearer-token authentication for coach and log routes.

Tokens are issued by the FitCheck auth service; this API only verifies
them and loads the `User` named by the `sub` claim.
"""
from typing import Optional
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from core.database import get_db
from core.exceptions import UnauthorizedError
from core.security import decode_access_token
from models import User

# Missing header -> our 401, not FastAPI's 403
bearer_scheme = HTTPBearer(auto_error=False)


def _user_id_from_token(token: str) -> UUID:
    claims = decode_access_token(token)
    if not claims:
        raise UnauthorizedError("Invalid or expired token")
    subject = claims.get("sub")
    try:
        return UUID(str(subject))
    except ValueError:
        raise UnauthorizedError("Token subject is not a user id")


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """The athlete making the request; 401 for any token or lookup failure."""
    if credentials is None:
        raise UnauthorizedError("Not authenticated")

    user = db.get(User, _user_id_from_token(credentials.credentials))
    if user is None:
        raise UnauthorizedError("Unknown user")
    return user
