"""
FieldSync Bearer Token Authentication
Tokens are issued by the external identity provider and signed with the shared
secret from settings. The token subject is the technician identifier, the same
value the scheduling feed uses as assignee.
"""

import time
import jwt
from fastapi import Depends, HTTPException, Request

from .config import Settings, get_settings

TOKEN_EXPIRY = 86400  # 24 hours


# ── Token Creation (tooling and tests) ──
def create_token(technician_id: str, settings: Settings, permissions: list[str] = None) -> str:
    payload = {
        "sub": technician_id,
        "permissions": permissions or [],
        "exp": int(time.time()) + TOKEN_EXPIRY
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


# ── Token Verification ──
def verify_token(token: str, settings: Settings) -> dict:
    """Verify and decode a JWT token. Raises HTTPException if invalid."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


# ── Permission Checker ──
def has_permission(token_payload: dict, required_permission: str) -> bool:
    """Check if the caller has a specific permission."""
    return required_permission in token_payload.get("permissions", [])


# ── FastAPI Dependencies ──
async def get_current_user(request: Request, settings: Settings = Depends(get_settings)) -> dict:
    """Extract and verify the caller from the Authorization header."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing auth token")
    payload = verify_token(auth_header.split(" ", 1)[1], settings)
    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Token has no subject")
    return payload


async def get_technician_id(user: dict = Depends(get_current_user)) -> str:
    return user["sub"]
