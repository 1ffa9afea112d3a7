"""Bearer-token gate for the administrative API.

Tokens are issued by the external sign-in layer, which shares the
signing secret and this token format: `sub` is the account email and
`typ` is "access".
"""
import logging
from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError

from examdesk.models.user import User
from examdesk.services.user import can_sign_in, get_user
from examdesk.utils.base import UserRole
from examdesk.utils.config import settings


logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def create_token(subject: str, expires_delta: timedelta, token_type: str) -> str:
    """Create a signed JWT with subject, expiration and type."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
        "typ": token_type,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(email: str) -> str:
    return create_token(
        subject=email.lower(),
        expires_delta=timedelta(minutes=settings.access_token_expires_minutes),
        token_type="access",
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> User:
    """Auth dependency that validates an access token and returns the user.

    Rejects invalid tokens, unknown accounts and deactivated accounts.
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Could not validate credentials")
    try:
        payload = jwt.decode(credentials.credentials, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        email: str | None = payload.get("sub")
        typ: str | None = payload.get("typ")
        if email is None or typ != "access":
            raise HTTPException(status_code=401, detail="Could not validate credentials")
    except JWTError:
        raise HTTPException(status_code=401, detail="Could not validate credentials")

    user = get_user(email)
    if not user or not can_sign_in(email):
        raise HTTPException(status_code=401, detail="Could not validate credentials")
    return user


def require_superadmin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != UserRole.SUPERADMIN.value:
        logger.warning("Non-superadmin %s rejected from admin API", current_user.email)
        raise HTTPException(status_code=403, detail="Superadmin access required")
    return current_user
