from dataclasses import dataclass

from fastapi import Depends, HTTPException
from starlette.requests import Request

from app.core.jwt_auth import decode_token

ROLES = ("student", "teacher", "principal", "admin")
STAFF_ROLES = ("teacher", "principal", "admin")


@dataclass(frozen=True)
class Identity:
    """The active session as supplied by the identity provider. Read-only to the engine."""

    user_id: str
    role: str

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


async def get_identity(request: Request) -> Identity:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Unauthorized: missing bearer token")
    claims = decode_token(token.strip())
    if not claims or claims.get("role") not in ROLES or not claims.get("sub"):
        raise HTTPException(status_code=401, detail="Unauthorized: invalid or expired token")
    return Identity(user_id=str(claims["sub"]), role=str(claims["role"]))


def require_roles(*roles: str):
    async def _dependency(identity: Identity = Depends(get_identity)) -> Identity:
        if identity.role not in roles:
            raise HTTPException(status_code=403, detail=f"Role '{identity.role}' may not perform this action")
        return identity

    return _dependency


def ensure_self_or_staff(identity: Identity, student_id: str) -> None:
    if identity.user_id != student_id and not identity.is_staff:
        raise HTTPException(status_code=403, detail="Students may only access their own records")
