from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException


@dataclass(frozen=True)
class Identity:
    user_id: str
    is_admin: bool = False


async def get_identity(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Identity:
    """
    Identity + role as asserted by the auth layer in front of this service.
    This service never authenticates; it only reads what it is given.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id")
    return Identity(user_id=x_user_id.strip(), is_admin=(x_user_role or "").strip().lower() == "admin")


async def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return identity
