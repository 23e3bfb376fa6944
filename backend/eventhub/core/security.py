"""
Caller identity resolution.

Authentication happens upstream (API gateway / auth service). By the time a
request reaches this service the caller's id and role have been verified and
forwarded in trusted headers, which we only parse here.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status


class Role(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class Caller:
    user_id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


async def get_current_caller(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Caller:
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid caller identity",
        )
    try:
        role = Role((x_user_role or Role.USER.value).lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid caller role",
        )
    return Caller(user_id=user_id, role=role)


async def require_admin(caller: Caller = Depends(get_current_caller)) -> Caller:
    if not caller.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return caller
