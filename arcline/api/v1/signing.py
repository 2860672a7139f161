"""Public signing endpoints. Access is by link token only."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from arcline.api.deps import get_db
from arcline.core.signing.schemas import SignatureResult, SignatureSubmission, SigningRequestView
from arcline.core.signing.service import SigningService

router = APIRouter(prefix="/public/sign", tags=["Signing"])


# ---------- Endpoints ----------


@router.get("/{token}", response_model=SigningRequestView)
async def view_signing_request(token: str, db: AsyncSession = Depends(get_db)):
    service = SigningService()
    request = await service.get_signing_request_by_token(db, token)
    document = await service.get_document(db, request)
    return SigningRequestView(
        id=request.id,
        document_id=document.id,
        document_title=document.title,
        document_url=document.url,
        signer_name=request.signer_name,
        sent_to_email=request.sent_to_email,
        status=request.status,
        sequence=request.sequence if request.sequence is not None else 1,
        expires_at=request.expires_at,
    )


@router.post("/{token}", response_model=SignatureResult)
async def submit_signature(
    token: str,
    body: SignatureSubmission,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    forwarded_for = request.headers.get("x-forwarded-for")
    ip_address = forwarded_for.split(",")[0].strip() if forwarded_for else None
    if not ip_address and request.client:
        ip_address = request.client.host

    return await SigningService().submit_signature(
        db,
        token,
        body,
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent"),
    )
