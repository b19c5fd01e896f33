# backend/artschool/security.py
"""
Password hashing and the role gate.

Sessions are issued upstream; the gateway forwards the caller as
``X-User-Id`` / ``X-User-Role`` headers and this module only decides whether
that caller may reach an endpoint.
"""
import logging
from typing import Optional

import bcrypt
from fastapi import Depends, Header, HTTPException

from .config import settings
from .enums import Role, coerce
from .schemas import Principal

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:MAX_PASSWORD_BYTES]


def hash_password(plain: str, rounds: Optional[int] = None) -> str:
    if not plain:
        raise ValueError("password must not be empty")
    salt = bcrypt.gensalt(rounds=rounds or settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(_encode(plain), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
    except ValueError:
        logger.warning("stored password hash is malformed")
        return False


def get_principal(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Principal:
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return Principal(user_id=int(x_user_id), role=coerce(Role, x_user_role))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid caller identity") from None


def require_roles(*roles: Role):
    """Dependency factory: the caller's role must be one of ``roles``."""

    def _check(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return principal

    return _check


# role tiers used by the routers
staff_only = require_roles(Role.TEACHER, Role.BOSS)
boss_only = require_roles(Role.BOSS)
