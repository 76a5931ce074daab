import uuid
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from pydantic import BaseModel
from booking_core.core.config import settings
from booking_core.core.errors import NotAuthorized

http_bearer = HTTPBearer(auto_error=False)

class Principal(BaseModel):
    user_id: uuid.UUID
    roles: list[str] = []
    scopes: list[str] = []

    @property
    def is_admin(self) -> bool:
        return "admin" in self.roles

    @property
    def actor(self) -> str:
        return str(self.user_id)

def _decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG], audience=settings.REQUIRED_AUDIENCE)
        return payload
    except JWTError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}")

async def get_principal(creds: HTTPAuthorizationCredentials | None = Depends(http_bearer)) -> Principal:
    # In local, allow missing token and act as admin
    if creds is None and settings.ENV == "local":
        return Principal(user_id=uuid.uuid4(), roles=["admin"], scopes=["*"])
    if creds is None:
        raise HTTPException(status_code=401, detail="Missing token")

    data = _decode_token(creds.credentials)
    try:
        user_id = uuid.UUID(str(data.get("sub") or data.get("user_id")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Token subject is not a user id")
    return Principal(user_id=user_id, roles=data.get("roles", []), scopes=data.get("scopes", []))

def require_scopes(*needed: str):
    def dep(principal: Principal = Depends(get_principal)) -> Principal:
        if "*" in principal.scopes:
            return principal
        if not set(needed).issubset(set(principal.scopes)):
            raise HTTPException(status_code=403, detail="Insufficient scopes")
        return principal
    return dep

def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_admin:
        raise NotAuthorized("Admin access required")
    return principal

def ensure_admin_or_owner(principal: Principal, *owners: uuid.UUID | None) -> None:
    """Raise NotAuthorized unless the caller is an admin or one of the owners."""
    if principal.is_admin:
        return
    if any(o is not None and o == principal.user_id for o in owners):
        return
    raise NotAuthorized("Not authorized to access this resource")
