import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arcline.api.deps import get_current_user, get_db
from arcline.common.enums import MembershipRole
from arcline.common.exceptions import BadRequestError, PermissionDeniedError
from arcline.common.logging import get_logger
from arcline.common.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    verify_password,
)
from arcline.db.models.organization import Membership, Organization
from arcline.db.models.user import User

router = APIRouter(prefix="/auth", tags=["Authentication"])
logger = get_logger("api.auth")


# ---------- Schemas ----------


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    full_name: str = Field(min_length=1, max_length=255)
    phone: str | None = None
    # Company to create with the account; the new user becomes its owner
    org_name: str | None = Field(default=None, min_length=2, max_length=255)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    # Set when the user belongs to exactly one organization
    default_org_id: uuid.UUID | None = None


class RefreshRequest(BaseModel):
    refresh_token: str


class MembershipSummary(BaseModel):
    org_id: uuid.UUID
    org_name: str
    role: str


class AccountResponse(BaseModel):
    id: uuid.UUID
    email: str
    full_name: str
    phone: str | None
    is_active: bool
    memberships: list[MembershipSummary]


async def _memberships(db: AsyncSession, user_id: uuid.UUID) -> list[MembershipSummary]:
    result = await db.execute(
        select(Membership)
        .where(Membership.user_id == user_id, Membership.is_deleted.is_(False))
        .order_by(Membership.created_at.asc())
    )
    return [
        MembershipSummary(org_id=m.org_id, org_name=m.organization.name, role=m.role)
        for m in result.scalars().all()
    ]


def _account(user: User, memberships: list[MembershipSummary]) -> AccountResponse:
    return AccountResponse(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        phone=user.phone,
        is_active=user.is_active,
        memberships=memberships,
    )


async def _issue_tokens(db: AsyncSession, user: User) -> TokenResponse:
    memberships = await _memberships(db, user.id)
    claims = {"sub": str(user.id)}
    return TokenResponse(
        access_token=create_access_token(claims),
        refresh_token=create_refresh_token(claims),
        default_org_id=memberships[0].org_id if len(memberships) == 1 else None,
    )


# ---------- Endpoints ----------


@router.post("/register", response_model=AccountResponse, status_code=201)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    email = body.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise BadRequestError("An account with this email already exists")

    user = User(
        email=email,
        hashed_password=get_password_hash(body.password),
        full_name=body.full_name,
        phone=body.phone,
    )
    db.add(user)
    await db.flush()

    if body.org_name:
        org = Organization(name=body.org_name.strip(), accounting_settings={})
        db.add(org)
        await db.flush()
        db.add(
            Membership(org_id=org.id, organization=org, user_id=user.id, role=MembershipRole.OWNER.value)
        )
        await db.flush()
        logger.info("Registered user %s as owner of organization %s", user.id, org.id)
    else:
        logger.info("Registered user %s without an organization", user.id)

    await db.refresh(user)
    return _account(user, await _memberships(db, user.id))


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(User).where(User.email == body.email.lower(), User.is_deleted.is_(False))
    )
    user = result.scalar_one_or_none()

    if not user or not verify_password(body.password, user.hashed_password):
        raise PermissionDeniedError("Invalid email or password")
    if not user.is_active:
        raise PermissionDeniedError("Account is inactive")

    return await _issue_tokens(db, user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(body: RefreshRequest, db: AsyncSession = Depends(get_db)):
    try:
        payload = decode_token(body.refresh_token)
    except ValueError:
        raise PermissionDeniedError("Invalid refresh token")

    if payload.get("type") != "refresh":
        raise PermissionDeniedError("Invalid token type")

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise PermissionDeniedError("Invalid token payload")

    result = await db.execute(select(User).where(User.id == user_id, User.is_deleted.is_(False)))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise PermissionDeniedError("User not found")

    return await _issue_tokens(db, user)


@router.get("/me", response_model=AccountResponse)
async def get_me(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return _account(current_user, await _memberships(db, current_user.id))
