"""Member profile endpoints."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from summit_api.api.dependencies.session import require_member
from summit_api.api.errors import translate_domain_error
from summit_api.db.session import get_session
from summit_api.models.user import User
from summit_api.services.identity import IdentityResolver
from summit_api.services.passes.exceptions import PassEngineError


router = APIRouter(prefix="/users", tags=["users"])


class UserSyncRequest(BaseModel):
    externalId: str = Field(..., min_length=1, description="Stable id issued by the identity provider")
    email: str = Field(..., min_length=3)
    fullName: str | None = None
    phone: str | None = None
    affiliation: str | None = None


class UserResponse(BaseModel):
    id: UUID
    externalId: str | None
    email: str
    fullName: str | None
    phone: str | None
    affiliation: str | None
    createdAt: datetime


def serialize_user(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        externalId=user.external_id,
        email=user.email,
        fullName=user.full_name,
        phone=user.phone,
        affiliation=user.affiliation,
        createdAt=user.created_at,
    )


@router.post("/sync", response_model=UserResponse)
async def sync_user(
    payload: UserSyncRequest,
    auth_user: str | None = Header(None, alias="X-Auth-User"),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Find or create the local user for an identity provider account."""

    if auth_user and auth_user != payload.externalId:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot sync a different user's profile",
        )
    resolver = IdentityResolver(db)
    try:
        user = await resolver.resolve(
            payload.externalId,
            payload.email,
            full_name=payload.fullName,
            phone=payload.phone,
            affiliation=payload.affiliation,
        )
    except PassEngineError as error:
        raise translate_domain_error(error) from error
    return serialize_user(user)


@router.get("/me", response_model=UserResponse)
async def get_current_user(user: User = Depends(require_member)) -> UserResponse:
    return serialize_user(user)
