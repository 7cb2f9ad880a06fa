"""Identity helpers for FastAPI endpoints.

Authentication happens upstream; the gateway forwards the verified caller in
``X-User-Id`` (and optionally ``X-User-Nickname``). Requests without an
identity are rejected here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, status


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	display_name: Optional[str] = None


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_nickname: Optional[str] = Header(default=None, alias="X-User-Nickname"),
) -> AuthenticatedUser:
	user_id = (x_user_id or "").strip()
	if not user_id:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_identity")
	nickname = (x_user_nickname or "").strip() or None
	return AuthenticatedUser(id=user_id, display_name=nickname)


async def get_optional_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> Optional[AuthenticatedUser]:
	user_id = (x_user_id or "").strip()
	return AuthenticatedUser(id=user_id) if user_id else None


__all__ = ["AuthenticatedUser", "get_current_user", "get_optional_user"]
