import uuid
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arcline.common.clock import utcnow
from arcline.common.enums import ProposalStatus
from arcline.common.exceptions import BadRequestError, GoneError, NotFoundError
from arcline.common.logging import get_logger
from arcline.common.security import generate_token, hash_token
from arcline.config import settings
from arcline.core.signing.service import proposal_url
from arcline.db.models.contact import Contact
from arcline.db.models.proposal import Proposal

logger = get_logger("proposals.service")


class ProposalService:
    async def create(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        user_id: uuid.UUID,
        *,
        title: str,
        summary: str | None = None,
        total_cents: int = 0,
        project_id: uuid.UUID | None = None,
        recipient_contact_id: uuid.UUID | None = None,
        valid_until: date | None = None,
    ) -> tuple[Proposal, str]:
        """Create a proposal. Returns it with the raw public token, which is not stored."""
        if recipient_contact_id:
            result = await db.execute(
                select(Contact.id).where(
                    Contact.id == recipient_contact_id,
                    Contact.org_id == org_id,
                    Contact.is_deleted.is_(False),
                )
            )
            if result.scalar_one_or_none() is None:
                raise NotFoundError("Contact", str(recipient_contact_id))

        raw_token = generate_token()
        proposal = Proposal(
            org_id=org_id,
            project_id=project_id,
            recipient_contact_id=recipient_contact_id,
            title=title,
            summary=summary,
            total_cents=total_cents,
            status=ProposalStatus.DRAFT.value,
            token_hash=hash_token(settings.PROPOSAL_SECRET, raw_token),
            valid_until=valid_until,
            created_by=user_id,
        )
        db.add(proposal)
        await db.flush()
        await db.refresh(proposal)
        logger.info("Created proposal %s '%s'", proposal.id, title)
        return proposal, raw_token

    async def get(self, db: AsyncSession, org_id: uuid.UUID, proposal_id: uuid.UUID) -> Proposal:
        result = await db.execute(
            select(Proposal).where(
                Proposal.id == proposal_id,
                Proposal.org_id == org_id,
                Proposal.is_deleted.is_(False),
            )
        )
        proposal = result.scalar_one_or_none()
        if not proposal:
            raise NotFoundError("Proposal", str(proposal_id))
        return proposal

    async def send(self, db: AsyncSession, org_id: uuid.UUID, proposal_id: uuid.UUID) -> Proposal:
        proposal = await self.get(db, org_id, proposal_id)
        if proposal.status == ProposalStatus.ACCEPTED.value:
            raise BadRequestError("Proposal has already been accepted")
        proposal.status = ProposalStatus.SENT.value
        proposal.sent_at = utcnow()
        await db.flush()
        await db.refresh(proposal)
        return proposal

    async def get_public(self, db: AsyncSession, raw_token: str) -> Proposal:
        result = await db.execute(
            select(Proposal).where(
                Proposal.token_hash == hash_token(settings.PROPOSAL_SECRET, raw_token),
                Proposal.is_deleted.is_(False),
            )
        )
        proposal = result.scalar_one_or_none()
        if not proposal:
            raise NotFoundError("Proposal")
        if (
            proposal.status != ProposalStatus.ACCEPTED.value
            and proposal.valid_until
            and proposal.valid_until < utcnow().date()
        ):
            raise GoneError("This proposal has expired")
        return proposal

    @staticmethod
    def view_url(raw_token: str) -> str:
        return proposal_url(raw_token)
