# -*- coding: utf-8 -*-
"""
Caller identity for the API.

Tokens are issued elsewhere; here we only decode a signed JWT into the
caller's id and role, and offer role-gate dependencies for the routers.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from lessonbook.config import config
from lessonbook.errors import Forbidden
from lessonbook.models.user import Role

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")


@dataclass(frozen=True)
class Caller:
    user_id: int
    role: str


def require_role(caller: Caller, *roles):
    """Raise Forbidden unless the caller holds one of ``roles``."""
    if caller.role not in roles:
        raise Forbidden(f"Access restricted to: {', '.join(roles)}")


def create_access_token(user_id: int, role: str, expires_minutes: int = None):
    expire = datetime.utcnow() + timedelta(minutes=expires_minutes or config.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {"sub": str(user_id), "role": role, "exp": expire}
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.JWT_ALGORITHM)


# --- FASTAPI DEPENDENCIES ---
async def get_current_caller(token: str = Depends(oauth2_scheme)) -> Caller:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials", headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
        subject = payload.get("sub")
        role = payload.get("role")
        if subject is None or role is None:
            raise credentials_exception
        user_id = int(subject)
    except (JWTError, ValueError):
        raise credentials_exception

    if role not in Role.ALL:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unknown role.")
    return Caller(user_id=user_id, role=role)


async def get_staff_caller(caller: Caller = Depends(get_current_caller)) -> Caller:
    """Teachers and admins only."""
    if caller.role not in (Role.TEACHER, Role.ADMIN):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                            detail="Access restricted to teachers and admins.")
    return caller
