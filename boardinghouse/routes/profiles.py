# Profile endpoints for the signed-in user. Avatars live in the object store; we keep only the URL.
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..rate_limit import rate_limit
from .auth import AuthContext, require_user

router = APIRouter()


@router.get("/profiles/me", response_model=schemas.ProfileRead)
def get_my_profile(ctx: AuthContext = Depends(require_user)) -> models.Profile:
    return ctx.profile


@router.put(
    "/profiles/me",
    response_model=schemas.ProfileRead,
    dependencies=[Depends(rate_limit("write"))],
)
def update_my_profile(
    payload: schemas.ProfileUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_user),
) -> models.Profile:
    profile = ctx.profile
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(profile, key, value)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile
