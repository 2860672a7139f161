from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from arcline.db.base import BaseModel, OrgScopedMixin


class Contact(BaseModel, OrgScopedMixin):
    __tablename__ = "contacts"

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
