import uuid

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from arcline.common.enums import MembershipRole
from arcline.db.base import BaseModel, OrgScopedMixin


class Organization(BaseModel):
    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # invoice_number_sync / invoice_number_pattern / invoice_number_prefix /
    # last_known_invoice_number
    accounting_settings: Mapped[dict | None] = mapped_column(JSONB, nullable=True, default=dict)
    qbo_realm_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Relationships
    memberships = relationship("Membership", back_populates="organization", lazy="selectin")


class Membership(BaseModel, OrgScopedMixin):
    __tablename__ = "memberships"
    __table_args__ = (UniqueConstraint("org_id", "user_id", name="uq_memberships_org_user"),)

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    role: Mapped[MembershipRole] = mapped_column(
        String(20), nullable=False, default=MembershipRole.MEMBER
    )

    # Relationships
    organization = relationship("Organization", back_populates="memberships", lazy="selectin")
    user = relationship("User", back_populates="memberships", lazy="selectin")
