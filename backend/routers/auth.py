import time

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from backend.security import issue_session_token, require_session, role_for_email, verify_access_code

router = APIRouter()


class OperatorLogin(BaseModel):
    email: str
    name: str = ""
    access_code: str


@router.post("/auth/login")
def operator_login(payload: OperatorLogin):
    email = payload.email.strip()
    name = payload.name.strip() or "Unknown Volunteer"

    if not email:
        raise HTTPException(status_code=400, detail="Email is required.")
    if not payload.access_code.strip():
        raise HTTPException(status_code=400, detail="Access code is required.")
    if not verify_access_code(payload.access_code):
        raise HTTPException(status_code=401, detail="Invalid code. Please try again.")

    token, claims = issue_session_token(email, name=name, role=role_for_email(email))
    now = int(time.time())
    return {
        "access_token": token,
        "token_type": "bearer",
        "email": claims["sub"],
        "name": claims["name"],
        "role": claims["role"],
        "expires_at": claims["exp"],
        "expires_in": max(0, int(claims["exp"]) - now),
    }


@router.get("/auth/me")
def auth_me(session: dict = Depends(require_session)):
    return {
        "email": session.get("sub"),
        "name": session.get("name"),
        "role": session.get("role", "volunteer"),
        "expires_at": session.get("exp"),
        "issued_at": session.get("iat"),
    }
