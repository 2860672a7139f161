import uuid
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arcline.api.deps import OrgContext, get_current_user, get_db, require_org_role
from arcline.common.enums import MembershipRole
from arcline.common.exceptions import ConflictError, NotFoundError
from arcline.common.logging import get_logger
from arcline.db.models.organization import Membership, Organization
from arcline.db.models.user import User

router = APIRouter(prefix="/orgs", tags=["Organizations"])
logger = get_logger("api.orgs")


# ---------- Schemas ----------


class OrgCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class OrgSettingsUpdate(BaseModel):
    invoice_number_sync: bool | None = None
    invoice_number_pattern: Literal["numeric", "prefix", "custom"] | None = None
    invoice_number_prefix: str | None = Field(default=None, max_length=20)
    last_known_invoice_number: str | None = Field(default=None, max_length=50)
    qbo_realm_id: str | None = None


class MemberAddRequest(BaseModel):
    email: EmailStr
    role: MembershipRole = MembershipRole.MEMBER


class OrgResponse(BaseModel):
    id: uuid.UUID
    name: str
    role: str
    accounting_settings: dict
    qbo_connected: bool


class MemberResponse(BaseModel):
    user_id: uuid.UUID
    email: str
    full_name: str
    role: str


def _org_response(org: Organization, role: str) -> OrgResponse:
    return OrgResponse(
        id=org.id,
        name=org.name,
        role=role,
        accounting_settings=org.accounting_settings or {},
        qbo_connected=bool(org.qbo_realm_id),
    )


# ---------- Endpoints ----------


@router.post("", response_model=OrgResponse, status_code=201)
async def create_org(
    body: OrgCreateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    org = Organization(name=body.name, accounting_settings={})
    db.add(org)
    await db.flush()

    db.add(
        Membership(
            org_id=org.id, organization=org, user_id=current_user.id, role=MembershipRole.OWNER.value
        )
    )
    await db.flush()
    await db.refresh(org)

    logger.info("User %s created organization %s", current_user.id, org.id)
    return _org_response(org, MembershipRole.OWNER.value)


@router.get("", response_model=list[OrgResponse])
async def list_orgs(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Membership)
        .where(Membership.user_id == current_user.id, Membership.is_deleted.is_(False))
        .order_by(Membership.created_at.asc())
    )
    return [_org_response(m.organization, m.role) for m in result.scalars().all()]


@router.patch("/current/settings", response_model=OrgResponse)
async def update_org_settings(
    body: OrgSettingsUpdate,
    ctx: OrgContext = Depends(require_org_role(MembershipRole.OWNER, MembershipRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    org = ctx.org
    changes = body.model_dump(exclude_unset=True)

    if "qbo_realm_id" in changes:
        org.qbo_realm_id = changes.pop("qbo_realm_id") or None

    # Reassign so the JSON column registers the change
    org.accounting_settings = {**(org.accounting_settings or {}), **changes}

    await db.flush()
    await db.refresh(org)
    return _org_response(org, ctx.role)


@router.post("/current/members", response_model=MemberResponse, status_code=201)
async def add_member(
    body: MemberAddRequest,
    ctx: OrgContext = Depends(require_org_role(MembershipRole.OWNER, MembershipRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(User).where(User.email == body.email.lower(), User.is_deleted.is_(False))
    )
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundError("User", body.email)

    result = await db.execute(
        select(Membership).where(Membership.org_id == ctx.org_id, Membership.user_id == user.id)
    )
    if result.scalar_one_or_none():
        raise ConflictError("User is already a member of this organization")

    db.add(Membership(org_id=ctx.org_id, organization=ctx.org, user_id=user.id, role=body.role.value))
    await db.flush()

    logger.info("Added user %s to organization %s as %s", user.id, ctx.org_id, body.role.value)
    return MemberResponse(user_id=user.id, email=user.email, full_name=user.full_name, role=body.role.value)
