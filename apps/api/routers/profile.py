"""
Profile editor router.

Creating or updating any profile section costs credits. Each such write runs
inside ``gated_edit``: the gate is checked under the account lock, the write is
committed, and only then is the account debited (best effort).
"""

from typing import Any, Dict, List, Literal, Optional, Type

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import Base, get_db
from models.education import Education
from models.experience import Experience
from models.project import Project
from models.skill import Skill
from routers.auth_scope import ensure_account_scope, get_principal
from services.credits import gated_edit
from services.profiles import (
    create_entry,
    delete_entry,
    get_profile_bundle,
    get_public_profile,
    list_entries,
    update_entry,
    upsert_profile,
)
from services.session_token import Principal

router = APIRouter()


class _EditPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    userId: Optional[str] = None

    def to_fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"userId"}, by_alias=False)


class ProfileUpdate(_EditPayload):
    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    bio: Optional[str] = Field(default=None, max_length=5000)
    photo_url: Optional[str] = Field(default=None, alias="photoUrl", max_length=2048)
    cv_url: Optional[str] = Field(default=None, alias="cvUrl", max_length=2048)
    share_slug: Optional[str] = Field(
        default=None,
        alias="shareSlug",
        min_length=3,
        max_length=100,
        pattern=r"^[a-z0-9][a-z0-9-]*$",
    )


class EducationPayload(_EditPayload):
    degree: Optional[str] = Field(default=None, max_length=255)
    university: Optional[str] = Field(default=None, max_length=255)
    duration: Optional[str] = Field(default=None, max_length=100)


class ProjectPayload(_EditPayload):
    name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    link: Optional[str] = Field(default=None, max_length=2048)
    duration: Optional[str] = Field(default=None, max_length=100)


class SkillPayload(_EditPayload):
    name: Optional[str] = Field(default=None, max_length=100)
    proficiency: Optional[Literal["Beginner", "Intermediate", "Advanced", "Expert"]] = None


class ExperiencePayload(_EditPayload):
    role: Optional[str] = Field(default=None, max_length=255)
    company: Optional[str] = Field(default=None, max_length=255)
    duration: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=5000)


@router.get("/profile")
async def read_profile(
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    return await get_profile_bundle(principal.account_id, db)


@router.put("/profile")
async def write_profile(
    request: ProfileUpdate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    ensure_account_scope(principal, request.userId)
    async with gated_edit(principal.account_id, db):
        profile = await upsert_profile(principal.account_id, request.to_fields(), db)
        payload = profile.to_dict()
    return payload


@router.get("/profile/share/{share_slug}")
async def read_shared_profile(share_slug: str, db: AsyncSession = Depends(get_db)):
    return await get_public_profile(share_slug, db)


def _add_entry_routes(path: str, model: Type[Base], payload_model: Type[_EditPayload]) -> None:
    """Register list/create/update/delete routes for one profile section."""

    async def list_section(
        principal: Principal = Depends(get_principal),
        db: AsyncSession = Depends(get_db),
    ) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in await list_entries(model, principal.account_id, db)]

    async def create_section_entry(
        request: payload_model,
        principal: Principal = Depends(get_principal),
        db: AsyncSession = Depends(get_db),
    ):
        ensure_account_scope(principal, request.userId)
        async with gated_edit(principal.account_id, db):
            entry = await create_entry(model, principal.account_id, request.to_fields(), db)
            payload = entry.to_dict()
        return payload

    async def update_section_entry(
        entry_id: str,
        request: payload_model,
        principal: Principal = Depends(get_principal),
        db: AsyncSession = Depends(get_db),
    ):
        ensure_account_scope(principal, request.userId)
        async with gated_edit(principal.account_id, db):
            entry = await update_entry(model, principal.account_id, entry_id, request.to_fields(), db)
            payload = entry.to_dict()
        return payload

    async def delete_section_entry(
        entry_id: str,
        principal: Principal = Depends(get_principal),
        db: AsyncSession = Depends(get_db),
    ):
        await delete_entry(model, principal.account_id, entry_id, db)
        return {"success": True, "message": f"{model.__name__} deleted successfully"}

    router.add_api_route(path, list_section, methods=["GET"], name=f"list_{path.strip('/')}")
    router.add_api_route(path, create_section_entry, methods=["POST"], name=f"create_{path.strip('/')}")
    router.add_api_route(f"{path}/{{entry_id}}", update_section_entry, methods=["PUT"], name=f"update_{path.strip('/')}")
    router.add_api_route(f"{path}/{{entry_id}}", delete_section_entry, methods=["DELETE"], name=f"delete_{path.strip('/')}")


_add_entry_routes("/education", Education, EducationPayload)
_add_entry_routes("/projects", Project, ProjectPayload)
_add_entry_routes("/skills", Skill, SkillPayload)
_add_entry_routes("/experiences", Experience, ExperiencePayload)
