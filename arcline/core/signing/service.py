import uuid
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arcline.common.clock import as_utc, utcnow
from arcline.common.enums import (
    DocumentStatus,
    NotificationType,
    ProposalStatus,
    SigningRequestStatus,
)
from arcline.common.events import record_audit
from arcline.common.exceptions import (
    BadRequestError,
    GoneError,
    NotFoundError,
    PermissionDeniedError,
)
from arcline.common.logging import get_logger
from arcline.common.security import generate_token, hash_token
from arcline.config import settings
from arcline.core.outbox.service import notify
from arcline.core.signing.routing import (
    all_required_signed,
    effective_sequence,
    next_required_batch,
    pending_prior_signers,
    pick_next_required_request,
)
from arcline.core.signing.schemas import SignatureResult, SignatureSubmission, SignerInput
from arcline.db.models.document import Document, DocumentSignature, SigningRequest
from arcline.db.models.proposal import Proposal
from arcline.integrations.sendgrid import EmailClient

logger = get_logger("signing.service")

PROPOSAL_SOURCE = "proposal"


def signing_url(raw_token: str) -> str:
    return f"{settings.APP_URL}/d/{raw_token}"


def proposal_url(raw_token: str) -> str:
    return f"{settings.APP_URL}/proposal/{raw_token}"


def _normalize_email(value: str | None) -> str | None:
    value = (value or "").strip().lower()
    return value or None


class SigningService:
    async def issue_signing_link(self, db: AsyncSession, request: SigningRequest) -> str:
        """Mint a fresh link for ``request``. Any previous link stops working."""
        raw_token = generate_token()
        now = utcnow()
        request.token_hash = hash_token(settings.DOCUMENT_SIGNING_SECRET, raw_token)
        request.status = SigningRequestStatus.SENT.value
        request.sent_at = now
        request.expires_at = now + timedelta(days=settings.SIGNING_LINK_EXPIRE_DAYS)
        await db.flush()
        logger.info("Issued signing link for request %s (document %s)", request.id, request.document_id)
        return signing_url(raw_token)

    async def create_signing_requests(
        self,
        db: AsyncSession,
        org_id: uuid.UUID,
        document: Document,
        signers: list[SignerInput],
    ) -> list[SigningRequest]:
        if not signers:
            raise BadRequestError("At least one signer is required")

        requests = []
        for signer in signers:
            request = SigningRequest(
                org_id=org_id,
                document_id=document.id,
                sequence=signer.sequence,
                required=signer.required,
                status=SigningRequestStatus.DRAFT.value,
                sent_to_email=signer.email,
                signer_name=signer.name,
                signer_role=signer.role,
                max_uses=1,
                used_count=0,
            )
            db.add(request)
            requests.append(request)
        await db.flush()
        return requests

    async def list_requests(
        self, db: AsyncSession, org_id: uuid.UUID, document_id: uuid.UUID
    ) -> list[SigningRequest]:
        result = await db.execute(
            select(SigningRequest)
            .where(
                SigningRequest.org_id == org_id,
                SigningRequest.document_id == document_id,
                SigningRequest.is_deleted.is_(False),
            )
            .order_by(SigningRequest.sequence.asc(), SigningRequest.created_at.asc())
        )
        return list(result.scalars().all())

    async def send_document(
        self, db: AsyncSession, org_id: uuid.UUID, document: Document, user_id: uuid.UUID
    ) -> dict[uuid.UUID, str]:
        """Open the first signing round. Returns the issued link per request id."""
        if document.status == DocumentStatus.SIGNED.value:
            raise BadRequestError("Document is already signed")

        requests = await self.list_requests(db, org_id, document.id)
        batch = [r for r in next_required_batch(requests) if r.sent_to_email]
        if not batch:
            raise BadRequestError("No signer with an email address is waiting to sign")

        links = await self._issue_and_email(db, document, batch)

        document.status = DocumentStatus.SENT.value
        await db.flush()

        await record_audit(
            db,
            org_id=org_id,
            entity_type="document",
            entity_id=document.id,
            action="send",
            actor_id=user_id,
            diff={"signing_request_ids": [str(r.id) for r in batch]},
        )
        return links

    async def get_signing_request_by_token(self, db: AsyncSession, raw_token: str) -> SigningRequest:
        request = await self._request_for_token(db, raw_token)
        if request.status == SigningRequestStatus.SENT.value:
            request.status = SigningRequestStatus.VIEWED.value
            request.viewed_at = utcnow()
            await db.flush()
        return request

    async def get_document(self, db: AsyncSession, request: SigningRequest) -> Document:
        result = await db.execute(
            select(Document).where(
                Document.id == request.document_id, Document.org_id == request.org_id
            )
        )
        document = result.scalar_one_or_none()
        if not document:
            raise NotFoundError("Document", str(request.document_id))
        return document

    async def submit_signature(
        self,
        db: AsyncSession,
        raw_token: str,
        submission: SignatureSubmission,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> SignatureResult:
        if not submission.signer_name.strip():
            raise BadRequestError("Signer name is required")
        if not submission.consent or not submission.consent_text.strip():
            raise BadRequestError("Consent is required to sign")

        request = await self._request_for_token(db, raw_token)
        document = await self.get_document(db, request)
        requests = await self.list_requests(db, request.org_id, document.id)

        if pending_prior_signers(requests, effective_sequence(request)):
            raise PermissionDeniedError("This signer is not yet authorized to sign")

        now = utcnow()
        signature = DocumentSignature(
            org_id=request.org_id,
            signing_request_id=request.id,
            document_id=document.id,
            signer_name=submission.signer_name.strip(),
            signer_email=submission.signer_email or request.sent_to_email,
            values=submission.values,
            consent_text=submission.consent_text,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:500] or None,
            signed_at=now,
        )
        db.add(signature)

        request.status = SigningRequestStatus.SIGNED.value
        request.signed_at = now
        request.used_count = (request.used_count or 0) + 1
        await db.flush()
        logger.info("Request %s signed document %s", request.id, document.id)

        if all_required_signed(requests):
            await self._complete_document(db, document)
        else:
            batch = [
                r
                for r in next_required_batch(requests)
                if r.status == SigningRequestStatus.DRAFT.value and r.sent_to_email
            ]
            if batch:
                await self._issue_and_email(db, document, batch)

        return SignatureResult(
            signing_request_id=request.id,
            document_id=document.id,
            document_status=document.status,
            document_complete=document.status == DocumentStatus.SIGNED.value,
        )

    async def continue_proposal(self, db: AsyncSession, raw_token: str) -> str:
        """Resolve where the public "continue to sign" button should go.

        Falls back to the public proposal page whenever no signing link can
        be issued to the proposal's recipient.
        """
        back = proposal_url(raw_token)
        try:
            result = await db.execute(
                select(Proposal).where(
                    Proposal.token_hash == hash_token(settings.PROPOSAL_SECRET, raw_token),
                    Proposal.is_deleted.is_(False),
                )
            )
            proposal = result.scalar_one_or_none()
            if not proposal or proposal.status == ProposalStatus.ACCEPTED.value:
                return back
            if proposal.valid_until and proposal.valid_until < utcnow().date():
                return back

            result = await db.execute(
                select(Document)
                .where(
                    Document.org_id == proposal.org_id,
                    Document.source_entity_type == PROPOSAL_SOURCE,
                    Document.source_entity_id == proposal.id,
                    Document.is_deleted.is_(False),
                )
                .order_by(Document.created_at.desc())
                .limit(1)
            )
            document = result.scalar_one_or_none()
            if not document or document.status == DocumentStatus.SIGNED.value:
                return back

            requests = await self.list_requests(db, proposal.org_id, document.id)
            next_request = pick_next_required_request(requests)
            if next_request is None:
                return back

            recipient_email = _normalize_email(proposal.recipient.email if proposal.recipient else None)
            signer_email = _normalize_email(next_request.sent_to_email)
            if recipient_email and signer_email and recipient_email != signer_email:
                logger.info("Proposal %s recipient is not the next signer", proposal.id)
                return back

            return await self.issue_signing_link(db, next_request)
        except Exception as e:
            logger.error("Failed to continue proposal signing: %s", e)
            return back

    # ------------------------------------------------------------------

    async def _request_for_token(self, db: AsyncSession, raw_token: str) -> SigningRequest:
        if not raw_token:
            raise BadRequestError("Missing signing token")

        result = await db.execute(
            select(SigningRequest).where(
                SigningRequest.token_hash == hash_token(settings.DOCUMENT_SIGNING_SECRET, raw_token)
            )
        )
        request = result.scalar_one_or_none()
        if not request:
            raise NotFoundError("Signing request")

        expires_at = as_utc(request.expires_at)
        if expires_at and expires_at < utcnow():
            raise GoneError("Signing link has expired")
        if request.status in (SigningRequestStatus.VOIDED.value, SigningRequestStatus.EXPIRED.value):
            raise GoneError("Signing request is no longer valid")
        if (request.used_count or 0) >= (request.max_uses or 1):
            raise GoneError("Signing link has already been used")
        return request

    async def _issue_and_email(
        self, db: AsyncSession, document: Document, batch: list[SigningRequest]
    ) -> dict[uuid.UUID, str]:
        links = {}
        for request in batch:
            url = await self.issue_signing_link(db, request)
            links[request.id] = url
            try:
                await EmailClient().send_email(
                    to=request.sent_to_email,
                    subject=f"Signature requested: {document.title}",
                    html_body=(
                        f"<p>Hi {request.signer_name or 'there'},</p>"
                        f"<p>You have been asked to sign <strong>{document.title}</strong>.</p>"
                        f'<p><a href="{url}">Review and sign</a></p>'
                    ),
                )
            except Exception as e:
                logger.error("Failed to email signing link for request %s: %s", request.id, e)
        return links

    async def _complete_document(self, db: AsyncSession, document: Document) -> None:
        now = utcnow()
        document.status = DocumentStatus.SIGNED.value
        document.executed_at = now

        if document.source_entity_type == PROPOSAL_SOURCE and document.source_entity_id:
            result = await db.execute(
                select(Proposal).where(
                    Proposal.id == document.source_entity_id, Proposal.org_id == document.org_id
                )
            )
            proposal = result.scalar_one_or_none()
            if proposal and proposal.status != ProposalStatus.ACCEPTED.value:
                proposal.status = ProposalStatus.ACCEPTED.value
                proposal.accepted_at = now
                logger.info("Proposal %s accepted by signature", proposal.id)

        await db.flush()

        await notify(
            db,
            org_id=document.org_id,
            user_id=document.created_by,
            notification_type=NotificationType.DOCUMENT_SIGNED.value,
            title=f"{document.title} is fully signed",
            body="All required signers have completed the document.",
            action_url=f"{settings.APP_URL}/documents/{document.id}",
            payload={"document_id": str(document.id)},
        )
        logger.info("Document %s fully executed", document.id)
