from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from supabase import Client

from core.supabase_client import get_supabase_client
from models.enums import UserRole


bearer_scheme = HTTPBearer()


# ============================================================
# Current User Model
# ============================================================
class CurrentUser(BaseModel):
    id: str                         # Supabase Auth UID == users.id
    email: str
    role: str

    full_name: Optional[str] = None


# ============================================================
# AUTH DECODING (Supabase: validates JWT + reads metadata)
# ============================================================
def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> CurrentUser:

    token = credentials.credentials

    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired authentication token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    client: Client = get_supabase_client()
    if not client:
        raise HTTPException(500, "Supabase client not configured")

    # ---------------------------------------------------------
    # Validate JWT via Supabase GoTrue
    # ---------------------------------------------------------
    try:
        auth_resp = client.auth.get_user(token)
        if not auth_resp or not auth_resp.user:
            raise unauthorized
        auth_user = auth_resp.user
    except Exception:
        raise unauthorized

    email = auth_user.email
    metadata = auth_user.user_metadata or {}

    if not email:
        raise unauthorized

    role = metadata.get("role", UserRole.athlete.value)
    if role not in UserRole.list():
        role = UserRole.athlete.value

    return CurrentUser(
        id=auth_user.id,
        email=email,
        role=role,
        full_name=metadata.get("full_name"),
    )


# ============================================================
# ROLE CHECKER (basic role list guard)
# ============================================================
def requires_role(allowed_roles: list[str]):
    def checker(current_user: CurrentUser = Depends(get_current_user)):
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=403,
                detail=f"Requires one of: {allowed_roles}",
            )
        return current_user
    return checker
