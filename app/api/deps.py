from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.security import decode_token
from app.db.session import SessionLocal
from app.services.slot_store import SlotStore

bearer_scheme = HTTPBearer(auto_error=False)

MANAGER_ROLES = {"manager", "admin"}


@dataclass
class Caller:
    user_id: str
    role: str


def get_slot_store() -> SlotStore:
    return SlotStore(SessionLocal)


def get_current_caller(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> Caller:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    claims = decode_token(credentials.credentials)
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Caller(user_id=str(claims["sub"]), role=claims.get("role", "user"))


def get_current_manager(caller: Caller = Depends(get_current_caller)) -> Caller:
    if caller.role not in MANAGER_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Manager access required")
    return caller
