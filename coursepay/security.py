from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException

ROLES = {"LEARNER", "INSTRUCTOR", "SUPPORTER", "ADMIN"}


@dataclass(frozen=True)
class CurrentUser:
    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"


def get_current_user(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(default=None, alias="X-User-Role"),
) -> CurrentUser:
    """Identity forwarded by the upstream authentication middleware."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    role = (x_user_role or "LEARNER").strip().upper()
    if role not in ROLES:
        raise HTTPException(status_code=401, detail="Unknown role")
    return CurrentUser(id=user_id, role=role)


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return user


def require_self_or_admin(instructor_id: str, user: CurrentUser) -> None:
    if not user.is_admin and user.id != instructor_id:
        raise HTTPException(status_code=403, detail="Not allowed to access this wallet")


def require_owner(instructor_id: str, user: CurrentUser) -> None:
    if user.id != instructor_id:
        raise HTTPException(status_code=403, detail="Only the wallet owner can do this")
