import os

from fastapi import APIRouter, Depends, HTTPException

from app.auth import create_access_token, normalize_email, require_authenticated_owner
from app.models import AuthLoginRequest, AuthLoginResponse, AuthMeResponse

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=AuthLoginResponse)
def login(payload: AuthLoginRequest):
    email = normalize_email(payload.email)
    if not email or "@" not in email:
        raise HTTPException(status_code=400, detail="A valid email is required")
    if payload.password != os.getenv("AUTH_DEMO_PASSWORD", "homeservice-demo"):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token, expires_at = create_access_token(email=email)
    return AuthLoginResponse(access_token=token, email=email, expires_at=expires_at)


@router.get("/me", response_model=AuthMeResponse)
def me(email: str = Depends(require_authenticated_owner)):
    return AuthMeResponse(email=email)
