# parkflow/security.py
"""
Caller identity. The upstream gateway authenticates the request and forwards
the user id and role as headers; this service trusts them as given.
Ownership and role checks live here and are applied by the routers.
"""

from dataclasses import dataclass
from typing import Optional
from fastapi import Header, HTTPException, status
from parkflow.errors import Forbidden

OPERATOR_ROLES = {"operator", "admin"}


@dataclass
class Caller:
    user_id: int
    role: str = "user"

    @property
    def is_operator(self) -> bool:
        return self.role in OPERATOR_ROLES


def get_caller(
    x_user_id: Optional[int] = Header(None),
    x_user_role: str = Header("user"),
) -> Caller:
    """FastAPI dependency: identity of the authenticated caller."""
    if x_user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing caller identity")
    return Caller(user_id=x_user_id, role=x_user_role.strip().lower())


def ensure_operator(caller: Caller):
    if not caller.is_operator:
        raise Forbidden("Operator role required")


def ensure_owner_or_operator(caller: Caller, owner_id: int):
    if caller.user_id != owner_id and not caller.is_operator:
        raise Forbidden("Not allowed to act on another user's records")
