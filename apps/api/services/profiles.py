"""Profile storage scoped to the owning account."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import Base
from models.education import Education
from models.experience import Experience
from models.profile import Profile
from models.project import Project
from models.skill import Skill
from services.errors import NotFound, ShareSlugTaken

logger = logging.getLogger(__name__)


ENTRY_MODELS: Dict[str, Type[Base]] = {
    "education": Education,
    "projects": Project,
    "skills": Skill,
    "experiences": Experience,
}

PROFILE_FIELDS = ("name", "email", "bio", "photo_url", "cv_url", "share_slug")


async def get_profile(account_id: str, db: AsyncSession) -> Optional[Profile]:
    result = await db.execute(select(Profile).where(Profile.user_id == account_id))
    return result.scalar_one_or_none()


async def upsert_profile(account_id: str, fields: Dict[str, Any], db: AsyncSession) -> Profile:
    """Create the account's profile or update the supplied fields in place."""
    profile = await get_profile(account_id, db)
    if profile is None:
        profile = Profile(user_id=account_id)
        db.add(profile)

    for key, value in fields.items():
        if key in PROFILE_FIELDS:
            setattr(profile, key, value)

    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ShareSlugTaken() from exc
    await db.refresh(profile)
    return profile


async def list_entries(model: Type[Base], account_id: str, db: AsyncSession) -> List[Any]:
    result = await db.execute(
        select(model).where(model.user_id == account_id).order_by(model.created_at.asc(), model.id.asc())
    )
    return list(result.scalars().all())


async def get_owned_entry(model: Type[Base], account_id: str, entry_id: str, db: AsyncSession) -> Any:
    """Fetch an entry only if it belongs to ``account_id``; anything else is a 404."""
    result = await db.execute(select(model).where(model.id == entry_id, model.user_id == account_id))
    entry = result.scalar_one_or_none()
    if entry is None:
        raise NotFound(f"{model.__name__} not found")
    return entry


async def create_entry(model: Type[Base], account_id: str, fields: Dict[str, Any], db: AsyncSession) -> Any:
    entry = model(user_id=account_id, **fields)
    db.add(entry)
    await db.commit()
    await db.refresh(entry)
    return entry


async def update_entry(
    model: Type[Base],
    account_id: str,
    entry_id: str,
    fields: Dict[str, Any],
    db: AsyncSession,
) -> Any:
    entry = await get_owned_entry(model, account_id, entry_id, db)
    for key, value in fields.items():
        if key not in ("id", "user_id", "created_at"):
            setattr(entry, key, value)
    await db.commit()
    await db.refresh(entry)
    return entry


async def delete_entry(model: Type[Base], account_id: str, entry_id: str, db: AsyncSession) -> None:
    entry = await get_owned_entry(model, account_id, entry_id, db)
    await db.delete(entry)
    await db.commit()
    logger.info("profile_entry_deleted user=%s type=%s id=%s", account_id, model.__tablename__, entry_id)


async def _bundle(profile: Profile, db: AsyncSession) -> Dict[str, Any]:
    bundle = profile.to_dict()
    for key, model in ENTRY_MODELS.items():
        bundle[key] = [entry.to_dict() for entry in await list_entries(model, profile.user_id, db)]
    return bundle


async def get_profile_bundle(account_id: str, db: AsyncSession) -> Optional[Dict[str, Any]]:
    """Profile with all nested entry lists, or None when no profile exists."""
    profile = await get_profile(account_id, db)
    if profile is None:
        return None
    return await _bundle(profile, db)


async def get_public_profile(share_slug: str, db: AsyncSession) -> Dict[str, Any]:
    slug = (share_slug or "").strip()
    if not slug:
        raise NotFound("Profile not found")
    result = await db.execute(select(Profile).where(Profile.share_slug == slug))
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFound("Profile not found")
    bundle = await _bundle(profile, db)
    bundle.pop("userId", None)
    for key in ENTRY_MODELS:
        for entry in bundle[key]:
            entry.pop("userId", None)
    return bundle
