import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arcline.api.deps import OrgContext, get_db, get_org_context
from arcline.common.enums import DocumentStatus
from arcline.common.exceptions import BadRequestError, NotFoundError
from arcline.common.pagination import PaginatedResponse, PaginationParams, paginate
from arcline.core.signing.schemas import SignerInput
from arcline.core.signing.service import SigningService
from arcline.db.models.document import Document
from arcline.db.models.project import Project
from arcline.integrations.storage import StorageClient

router = APIRouter(prefix="/documents", tags=["Documents"])

ALLOWED_TYPES = {
    "application/pdf", "image/jpeg", "image/png", "image/webp",
    "application/msword", "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
}
MAX_FILE_SIZE = 50 * 1024 * 1024  # 50 MB
SOURCE_ENTITY_TYPES = {"proposal", "invoice", "project"}


# ---------- Schemas ----------


class DocumentResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID | None
    title: str
    filename: str
    content_type: str
    size_bytes: int
    url: str
    status: str
    source_entity_type: str | None
    source_entity_id: uuid.UUID | None
    executed_at: datetime | None
    created_at: str

    @classmethod
    def from_orm_instance(cls, document: Document) -> "DocumentResponse":
        return cls(
            id=document.id,
            project_id=document.project_id,
            title=document.title,
            filename=document.filename,
            content_type=document.content_type,
            size_bytes=document.size_bytes,
            url=document.url,
            status=document.status,
            source_entity_type=document.source_entity_type,
            source_entity_id=document.source_entity_id,
            executed_at=document.executed_at,
            created_at=document.created_at.isoformat(),
        )


class SigningRequestsCreate(BaseModel):
    signers: list[SignerInput] = Field(min_length=1)


class SigningRequestResponse(BaseModel):
    id: uuid.UUID
    sequence: int | None
    required: bool | None
    status: str
    sent_to_email: str | None
    signer_name: str | None
    signer_role: str
    sent_at: datetime | None
    signed_at: datetime | None

    model_config = {"from_attributes": True}


class SendResponse(BaseModel):
    document: DocumentResponse
    sent_request_ids: list[uuid.UUID]


# ---------- Endpoints ----------


@router.post("", response_model=DocumentResponse, status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    title: str = Form(...),
    project_id: uuid.UUID | None = Form(None),
    source_entity_type: str | None = Form(None),
    source_entity_id: uuid.UUID | None = Form(None),
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    if project_id:
        result = await db.execute(
            select(Project.id).where(
                Project.id == project_id, Project.org_id == ctx.org_id, Project.is_deleted.is_(False)
            )
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError("Project", str(project_id))

    if source_entity_type and source_entity_type not in SOURCE_ENTITY_TYPES:
        raise BadRequestError(f"Unknown source entity type '{source_entity_type}'")

    content = await file.read()
    if len(content) > MAX_FILE_SIZE:
        raise BadRequestError(f"File exceeds max size of {MAX_FILE_SIZE // (1024*1024)} MB")

    content_type = file.content_type or "application/octet-stream"
    if content_type not in ALLOWED_TYPES:
        raise BadRequestError(f"File type '{content_type}' is not allowed")

    storage = StorageClient()
    stored = await storage.upload_file(
        file_content=content,
        filename=file.filename or "unnamed",
        content_type=content_type,
        folder=f"orgs/{ctx.org_id}/documents",
    )

    document = Document(
        org_id=ctx.org_id,
        project_id=project_id,
        title=title,
        filename=file.filename or "unnamed",
        file_key=stored["file_key"],
        content_type=content_type,
        size_bytes=stored["size_bytes"],
        url=stored["url"],
        status=DocumentStatus.DRAFT.value,
        source_entity_type=source_entity_type,
        source_entity_id=source_entity_id,
        created_by=ctx.user.id,
    )
    db.add(document)
    await db.flush()
    await db.refresh(document)
    return DocumentResponse.from_orm_instance(document)


@router.get("", response_model=PaginatedResponse[DocumentResponse])
async def list_documents(
    project_id: uuid.UUID | None = None,
    params: PaginationParams = Depends(),
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    query = select(Document).where(Document.org_id == ctx.org_id, Document.is_deleted.is_(False))
    if project_id:
        query = query.where(Document.project_id == project_id)
    query = query.order_by(Document.created_at.desc())

    documents, total = await paginate(db, query, params, Document)
    return PaginatedResponse(
        items=[DocumentResponse.from_orm_instance(d) for d in documents],
        total=total,
        page=params.page,
        page_size=params.page_size,
        total_pages=params.total_pages(total),
    )


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    document = await _get_document(document_id, ctx.org_id, db)
    return DocumentResponse.from_orm_instance(document)


@router.post(
    "/{document_id}/signing-requests",
    response_model=list[SigningRequestResponse],
    status_code=201,
)
async def create_signing_requests(
    document_id: uuid.UUID,
    body: SigningRequestsCreate,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    document = await _get_document(document_id, ctx.org_id, db)
    if document.status != DocumentStatus.DRAFT.value:
        raise BadRequestError("Signers can only be added to a draft document")

    requests = await SigningService().create_signing_requests(db, ctx.org_id, document, body.signers)
    for request in requests:
        await db.refresh(request)
    return [SigningRequestResponse.model_validate(r) for r in requests]


@router.get("/{document_id}/signing-requests", response_model=list[SigningRequestResponse])
async def list_signing_requests(
    document_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    await _get_document(document_id, ctx.org_id, db)
    requests = await SigningService().list_requests(db, ctx.org_id, document_id)
    return [SigningRequestResponse.model_validate(r) for r in requests]


@router.post("/{document_id}/send", response_model=SendResponse)
async def send_document(
    document_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    document = await _get_document(document_id, ctx.org_id, db)
    links = await SigningService().send_document(db, ctx.org_id, document, ctx.user.id)
    await db.refresh(document)
    return SendResponse(
        document=DocumentResponse.from_orm_instance(document),
        sent_request_ids=list(links.keys()),
    )


async def _get_document(document_id: uuid.UUID, org_id: uuid.UUID, db: AsyncSession) -> Document:
    result = await db.execute(
        select(Document).where(
            Document.id == document_id,
            Document.org_id == org_id,
            Document.is_deleted.is_(False),
        )
    )
    document = result.scalar_one_or_none()
    if not document:
        raise NotFoundError("Document", str(document_id))
    return document
