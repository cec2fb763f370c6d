from __future__ import annotations

import enum
import os
import time
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import APIRouter, Depends, Header, HTTPException, status
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..rate_limit import rate_limit

router = APIRouter()

JWT_SECRET: str = os.getenv("BOARDINGHOUSE_JWT_SECRET", "dev-secret-change-me")
JWT_ALG: str = "HS256"
JWT_TTL_SECONDS: int = 60 * 60 * 24 * 7  # 7 days
# bcrypt_sha256 sidesteps bcrypt's 72-byte password limit
pwd_context = CryptContext(schemes=["bcrypt_sha256"], deprecated="auto")


# ----------------
# Helpers
# ----------------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(*, profile: models.Profile) -> str:
    now = int(time.time())
    payload = {
        "sub": str(profile.id),
        "email": profile.email,
        "role": profile.role.value,
        "iat": now,
        "exp": now + JWT_TTL_SECONDS,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc


def bearer_token_from_auth_header(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authorization header missing")
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid Authorization header")
    return parts[1]


# ----------------
# Auth context
# ----------------
class SessionState(str, enum.Enum):
    SIGNED_OUT = "signed_out"
    CHECKING = "checking"
    SIGNED_IN = "signed_in"


@dataclass
class AuthContext:
    """
    The caller of the current request, passed explicitly into service functions.

    Lifecycle: signed_out -> checking -> signed_in. A failed check drops back to
    signed_out; there is no process-wide session.
    """
    state: SessionState = SessionState.SIGNED_OUT
    profile: Optional[models.Profile] = None
    failure: Optional[str] = None

    def begin_check(self) -> None:
        if self.state is not SessionState.SIGNED_OUT:
            raise RuntimeError(f"cannot start a session check from {self.state.value}")
        self.state = SessionState.CHECKING

    def sign_in(self, profile: models.Profile) -> None:
        if self.state is not SessionState.CHECKING:
            raise RuntimeError(f"cannot sign in from {self.state.value}")
        self.profile = profile
        self.failure = None
        self.state = SessionState.SIGNED_IN

    def sign_out(self, reason: Optional[str] = None) -> None:
        self.profile = None
        self.failure = reason
        self.state = SessionState.SIGNED_OUT

    @property
    def signed_in(self) -> bool:
        return self.state is SessionState.SIGNED_IN

    @property
    def user_id(self) -> int:
        if not self.signed_in or self.profile is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not signed in")
        return self.profile.id

    @property
    def is_admin(self) -> bool:
        return self.signed_in and self.profile is not None and self.profile.role is models.Role.ADMIN

    @classmethod
    def for_profile(cls, profile: models.Profile) -> "AuthContext":
        ctx = cls()
        ctx.begin_check()
        ctx.sign_in(profile)
        return ctx


def resolve_auth_context(db: Session, authorization: Optional[str]) -> AuthContext:
    ctx = AuthContext()
    if not authorization:
        return ctx

    ctx.begin_check()
    try:
        payload = decode_token(bearer_token_from_auth_header(authorization))
    except HTTPException as exc:
        ctx.sign_out(str(exc.detail))
        return ctx

    user_id = str(payload.get("sub") or "")
    profile = db.get(models.Profile, int(user_id)) if user_id.isdigit() else None
    if profile is None:
        ctx.sign_out("User not found")
        return ctx
    ctx.sign_in(profile)
    return ctx


# ----------------
# Dependencies
# ----------------
def get_auth_context(
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> AuthContext:
    """Anonymous callers get a signed_out context instead of an error."""
    return resolve_auth_context(db, authorization)


def require_user(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not ctx.signed_in:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=ctx.failure or "Authorization header missing",
        )
    return ctx


def require_admin(ctx: AuthContext = Depends(require_user)) -> AuthContext:
    if not ctx.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return ctx


# ----------------
# Routes
# ----------------
@router.post(
    "/auth/signup",
    response_model=schemas.TokenResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("signup"))],
)
def signup(payload: schemas.SignupRequest, db: Session = Depends(get_db)) -> schemas.TokenResponse:
    existing = db.query(models.Profile).filter(models.Profile.email == payload.email).first()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    # Self sign-ups are always regular users; admins are seeded with `python -m boardinghouse.manage`
    profile = models.Profile(
        email=payload.email,
        password_hash=hash_password(payload.password),
        role=models.Role.USER,
        full_name=payload.full_name,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)

    return schemas.TokenResponse(
        access_token=create_access_token(profile=profile),
        user=schemas.ProfileRead.model_validate(profile),
    )


@router.post(
    "/auth/login",
    response_model=schemas.TokenResponse,
    dependencies=[Depends(rate_limit("login"))],
)
def login(payload: schemas.LoginRequest, db: Session = Depends(get_db)) -> schemas.TokenResponse:
    profile = db.query(models.Profile).filter(models.Profile.email == payload.email).first()
    if not profile or not verify_password(payload.password, profile.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    return schemas.TokenResponse(
        access_token=create_access_token(profile=profile),
        user=schemas.ProfileRead.model_validate(profile),
    )


@router.get("/auth/me", response_model=schemas.ProfileRead)
def me(ctx: AuthContext = Depends(require_user)) -> models.Profile:
    return ctx.profile
