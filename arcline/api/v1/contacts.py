import uuid

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from arcline.api.deps import OrgContext, get_db, get_org_context
from arcline.common.exceptions import NotFoundError
from arcline.common.pagination import PaginatedResponse, PaginationParams, paginate
from arcline.db.models.contact import Contact

router = APIRouter(prefix="/contacts", tags=["Contacts"])


# ---------- Schemas ----------


class ContactCreateRequest(BaseModel):
    full_name: str = Field(min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=50)
    company_name: str | None = Field(default=None, max_length=255)
    address: str | None = Field(default=None, max_length=500)


class ContactResponse(BaseModel):
    id: uuid.UUID
    full_name: str
    email: str | None
    phone: str | None
    company_name: str | None
    address: str | None

    model_config = {"from_attributes": True}


# ---------- Endpoints ----------


@router.post("", response_model=ContactResponse, status_code=201)
async def create_contact(
    body: ContactCreateRequest,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    contact = Contact(
        org_id=ctx.org_id,
        full_name=body.full_name,
        email=body.email.lower() if body.email else None,
        phone=body.phone,
        company_name=body.company_name,
        address=body.address,
    )
    db.add(contact)
    await db.flush()
    await db.refresh(contact)
    return contact


@router.get("", response_model=PaginatedResponse[ContactResponse])
async def list_contacts(
    q: str | None = Query(None, description="Search name, email or company"),
    params: PaginationParams = Depends(),
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    query = select(Contact).where(Contact.org_id == ctx.org_id, Contact.is_deleted.is_(False))
    if q:
        pattern = f"%{q}%"
        query = query.where(
            or_(
                Contact.full_name.ilike(pattern),
                Contact.email.ilike(pattern),
                Contact.company_name.ilike(pattern),
            )
        )
    query = query.order_by(Contact.full_name.asc())

    contacts, total = await paginate(db, query, params, Contact)
    return PaginatedResponse(
        items=[ContactResponse.model_validate(c) for c in contacts],
        total=total,
        page=params.page,
        page_size=params.page_size,
        total_pages=params.total_pages(total),
    )


@router.get("/{contact_id}", response_model=ContactResponse)
async def get_contact(
    contact_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Contact).where(
            Contact.id == contact_id,
            Contact.org_id == ctx.org_id,
            Contact.is_deleted.is_(False),
        )
    )
    contact = result.scalar_one_or_none()
    if not contact:
        raise NotFoundError("Contact", str(contact_id))
    return contact
