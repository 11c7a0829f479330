"""Find-or-create local users for identities issued by the auth provider."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from summit_api.models.user import User, normalize_email
from summit_api.services.passes.exceptions import ValidationError

_PROFILE_FIELDS = ("full_name", "phone", "affiliation")


class IdentityResolver:
    """Map an external auth id (with an email fallback) onto a ``User`` row."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_external_id(self, external_id: str) -> User | None:
        stmt = select(User).where(User.external_id == external_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == normalize_email(email))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, user_id: UUID) -> User | None:
        return await self._session.get(User, user_id)

    async def resolve(
        self,
        external_id: str | None,
        fallback_email: str | None,
        *,
        full_name: str | None = None,
        phone: str | None = None,
        affiliation: str | None = None,
    ) -> User:
        """Return the user for ``external_id``, linking or creating as needed.

        Lookup order is external id, then case-insensitive email. An email
        match without an external id gets the id attached. Unique-constraint
        races on create or attach resolve to the winning row.
        """

        return await self._resolve(
            external_id,
            fallback_email,
            profile={"full_name": full_name, "phone": phone, "affiliation": affiliation},
            retry=True,
        )

    async def _resolve(
        self,
        external_id: str | None,
        fallback_email: str | None,
        *,
        profile: dict[str, str | None],
        retry: bool,
    ) -> User:
        if not external_id and not fallback_email:
            raise ValidationError("An external user id or email is required")

        if external_id:
            user = await self.get_by_external_id(external_id)
            if user is not None:
                await self._fill_missing_profile(user, profile)
                return user

        email = normalize_email(fallback_email) if fallback_email else None
        if email:
            user = await self.get_by_email(email)
            if user is not None:
                if external_id and user.external_id != external_id:
                    if user.external_id:
                        logger.warning(
                            "Relinking user to a new external identity",
                            user_id=str(user.id),
                            previous_external_id=user.external_id,
                            external_id=external_id,
                        )
                    user.external_id = external_id
                self._apply_missing_profile(user, profile)
                return await self._commit_or_refetch(
                    user,
                    external_id=external_id,
                    email=email,
                    retry=retry,
                    profile=profile,
                )

        if not email:
            raise ValidationError("An email is required to register a new user")

        user = User(external_id=external_id, email=email, **profile)
        self._session.add(user)
        user = await self._commit_or_refetch(
            user,
            external_id=external_id,
            email=email,
            retry=retry,
            profile=profile,
        )
        logger.info("Registered user", user_id=str(user.id), external_id=external_id)
        return user

    async def update_profile(self, user: User, **fields: Any) -> User:
        changed = False
        if fields.get("email"):
            email = normalize_email(fields["email"])
            if email != user.email:
                user.email = email
                changed = True
        for field in _PROFILE_FIELDS:
            value = fields.get(field)
            if value is not None and getattr(user, field) != value:
                setattr(user, field, value)
                changed = True
        if changed:
            await self._session.commit()
        return user

    async def _fill_missing_profile(self, user: User, profile: dict[str, str | None]) -> None:
        if self._apply_missing_profile(user, profile):
            await self._session.commit()

    @staticmethod
    def _apply_missing_profile(user: User, profile: dict[str, str | None]) -> bool:
        changed = False
        for field, value in profile.items():
            if value and not getattr(user, field):
                setattr(user, field, value)
                changed = True
        return changed

    async def _commit_or_refetch(
        self,
        user: User,
        *,
        external_id: str | None,
        email: str,
        retry: bool,
        profile: dict[str, str | None],
    ) -> User:
        try:
            await self._session.commit()
        except IntegrityError:
            await self._session.rollback()
            logger.warning(
                "Detected race when resolving user",
                external_id=external_id,
                email=email,
            )
            if not retry:
                raise
            return await self._resolve(external_id, email, profile=profile, retry=False)
        return user


__all__ = ["IdentityResolver"]
