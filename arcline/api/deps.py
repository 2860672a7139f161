import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arcline.common.enums import MembershipRole
from arcline.common.exceptions import BadRequestError, NotFoundError, PermissionDeniedError
from arcline.common.security import decode_token
from arcline.db.models.organization import Membership, Organization
from arcline.db.models.user import User
from arcline.db.session import async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_current_user(
    authorization: str = Header(..., description="Bearer <token>"),
    db: AsyncSession = Depends(get_db),
) -> User:
    if not authorization.startswith("Bearer "):
        raise PermissionDeniedError("Invalid authorization header format")

    token = authorization[len("Bearer "):]
    try:
        payload = decode_token(token)
    except ValueError:
        raise PermissionDeniedError("Invalid or expired token")

    if payload.get("type") != "access":
        raise PermissionDeniedError("Invalid token type")

    user_id = payload.get("sub")
    if not user_id:
        raise PermissionDeniedError("Invalid token payload")

    result = await db.execute(
        select(User).where(User.id == uuid.UUID(user_id), User.is_deleted.is_(False))
    )
    user = result.scalar_one_or_none()

    if not user:
        raise NotFoundError("User")
    if not user.is_active:
        raise PermissionDeniedError("User account is inactive")

    return user


@dataclass
class OrgContext:
    org: Organization
    membership: Membership
    user: User

    @property
    def org_id(self) -> uuid.UUID:
        return self.org.id

    @property
    def role(self) -> str:
        return self.membership.role


async def get_org_context(
    x_org_id: str | None = Header(None, alias="X-Org-Id", description="Active organization id"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OrgContext:
    query = select(Membership).where(
        Membership.user_id == current_user.id, Membership.is_deleted.is_(False)
    )
    if x_org_id:
        try:
            org_id = uuid.UUID(x_org_id)
        except ValueError:
            raise BadRequestError("Invalid X-Org-Id header")
        query = query.where(Membership.org_id == org_id)

    result = await db.execute(query)
    memberships = list(result.scalars().all())

    if not memberships:
        raise PermissionDeniedError("You are not a member of this organization")
    if len(memberships) > 1:
        raise BadRequestError("X-Org-Id header is required for users in multiple organizations")

    membership = memberships[0]
    return OrgContext(org=membership.organization, membership=membership, user=current_user)


def require_org_role(*roles: MembershipRole):
    async def role_checker(ctx: OrgContext = Depends(get_org_context)) -> OrgContext:
        if ctx.role not in [r.value for r in roles]:
            raise PermissionDeniedError(
                f"This action requires one of the following roles: {', '.join(r.value for r in roles)}"
            )
        return ctx

    return role_checker
