"""Identity-aware dependencies for member APIs."""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from summit_api.db.session import get_session
from summit_api.models.user import User
from summit_api.services.identity import IdentityResolver
from summit_api.services.passes.exceptions import ValidationError


async def require_member(
    auth_user: str | None = Header(None, alias="X-Auth-User"),
    auth_email: str | None = Header(None, alias="X-Auth-Email"),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Resolve the caller from identity headers forwarded by the auth gateway."""

    if not auth_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authenticated user context",
        )

    resolver = IdentityResolver(db)
    user = await resolver.get_by_external_id(auth_user)
    if user is not None:
        return user
    if not auth_email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user; sync the profile first",
        )
    try:
        return await resolver.resolve(auth_user, auth_email)
    except ValidationError as error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error)) from error
