import uuid
from datetime import date, datetime

from fastapi import APIRouter, Depends, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from arcline.api.deps import OrgContext, get_db, get_org_context
from arcline.core.proposals.service import ProposalService
from arcline.core.signing.service import SigningService
from arcline.db.models.proposal import Proposal

router = APIRouter(prefix="/proposals", tags=["Proposals"])
public_router = APIRouter(prefix="/public/proposals", tags=["Proposals"])


# ---------- Schemas ----------


class ProposalCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    summary: str | None = None
    total_cents: int = Field(default=0, ge=0)
    project_id: uuid.UUID | None = None
    recipient_contact_id: uuid.UUID | None = None
    valid_until: date | None = None


class ProposalResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID | None
    recipient_contact_id: uuid.UUID | None
    title: str
    summary: str | None
    total_cents: int
    status: str
    valid_until: date | None
    sent_at: datetime | None
    accepted_at: datetime | None


class ProposalCreatedResponse(ProposalResponse):
    # Only returned once; the token itself is not stored.
    view_url: str


class PublicProposalResponse(BaseModel):
    title: str
    summary: str | None
    total_cents: int
    status: str
    valid_until: date | None
    recipient_name: str | None


def _proposal_fields(proposal: Proposal) -> dict:
    return {
        "id": proposal.id,
        "project_id": proposal.project_id,
        "recipient_contact_id": proposal.recipient_contact_id,
        "title": proposal.title,
        "summary": proposal.summary,
        "total_cents": proposal.total_cents,
        "status": proposal.status,
        "valid_until": proposal.valid_until,
        "sent_at": proposal.sent_at,
        "accepted_at": proposal.accepted_at,
    }


# ---------- Endpoints ----------


@router.post("", response_model=ProposalCreatedResponse, status_code=201)
async def create_proposal(
    body: ProposalCreateRequest,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    proposal, raw_token = await ProposalService().create(
        db, ctx.org_id, ctx.user.id, **body.model_dump()
    )
    return ProposalCreatedResponse(**_proposal_fields(proposal), view_url=ProposalService.view_url(raw_token))


@router.get("/{proposal_id}", response_model=ProposalResponse)
async def get_proposal(
    proposal_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    proposal = await ProposalService().get(db, ctx.org_id, proposal_id)
    return ProposalResponse(**_proposal_fields(proposal))


@router.post("/{proposal_id}/send", response_model=ProposalResponse)
async def send_proposal(
    proposal_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    proposal = await ProposalService().send(db, ctx.org_id, proposal_id)
    return ProposalResponse(**_proposal_fields(proposal))


@public_router.get("/{token}", response_model=PublicProposalResponse)
async def view_public_proposal(token: str, db: AsyncSession = Depends(get_db)):
    proposal = await ProposalService().get_public(db, token)
    return PublicProposalResponse(
        title=proposal.title,
        summary=proposal.summary,
        total_cents=proposal.total_cents,
        status=proposal.status,
        valid_until=proposal.valid_until,
        recipient_name=proposal.recipient.full_name if proposal.recipient else None,
    )


@public_router.get("/{token}/continue")
async def continue_to_signing(token: str, db: AsyncSession = Depends(get_db)):
    url = await SigningService().continue_proposal(db, token)
    return RedirectResponse(url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
