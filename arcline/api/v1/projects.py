import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arcline.api.deps import OrgContext, get_db, get_org_context
from arcline.common.enums import ProjectStatus
from arcline.common.exceptions import BadRequestError, NotFoundError
from arcline.common.pagination import PaginatedResponse, PaginationParams, paginate
from arcline.db.models.contact import Contact
from arcline.db.models.project import Project

router = APIRouter(prefix="/projects", tags=["Projects"])

VALID_TRANSITIONS = {
    ProjectStatus.PLANNING: [ProjectStatus.ACTIVE, ProjectStatus.CANCELLED],
    ProjectStatus.ACTIVE: [ProjectStatus.ON_HOLD, ProjectStatus.COMPLETED, ProjectStatus.CANCELLED],
    ProjectStatus.ON_HOLD: [ProjectStatus.ACTIVE, ProjectStatus.CANCELLED],
    ProjectStatus.COMPLETED: [],
    ProjectStatus.CANCELLED: [],
}


# ---------- Schemas ----------


class ProjectCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=500)
    description: str | None = None
    address: str | None = None
    client_contact_id: uuid.UUID | None = None


class ProjectUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=500)
    status: ProjectStatus | None = None
    description: str | None = None
    address: str | None = None
    client_contact_id: uuid.UUID | None = None


class ProjectResponse(BaseModel):
    id: uuid.UUID
    org_id: uuid.UUID
    name: str
    status: str
    description: str | None
    address: str | None
    client_contact_id: uuid.UUID | None
    created_by: uuid.UUID
    created_at: str

    @classmethod
    def from_orm_instance(cls, project: Project) -> "ProjectResponse":
        return cls(
            id=project.id,
            org_id=project.org_id,
            name=project.name,
            status=project.status,
            description=project.description,
            address=project.address,
            client_contact_id=project.client_contact_id,
            created_by=project.created_by,
            created_at=project.created_at.isoformat(),
        )


# ---------- Endpoints ----------


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(
    body: ProjectCreateRequest,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    if body.client_contact_id:
        await _verify_contact(body.client_contact_id, ctx.org_id, db)

    project = Project(
        org_id=ctx.org_id,
        name=body.name,
        description=body.description,
        address=body.address,
        client_contact_id=body.client_contact_id,
        status=ProjectStatus.PLANNING.value,
        created_by=ctx.user.id,
    )
    db.add(project)
    await db.flush()
    await db.refresh(project)
    return ProjectResponse.from_orm_instance(project)


@router.get("", response_model=PaginatedResponse[ProjectResponse])
async def list_projects(
    status: ProjectStatus | None = None,
    params: PaginationParams = Depends(),
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    query = select(Project).where(Project.org_id == ctx.org_id, Project.is_deleted.is_(False))
    if status is not None:
        query = query.where(Project.status == status.value)
    query = query.order_by(Project.created_at.desc())

    projects, total = await paginate(db, query, params, Project)
    return PaginatedResponse(
        items=[ProjectResponse.from_orm_instance(p) for p in projects],
        total=total,
        page=params.page,
        page_size=params.page_size,
        total_pages=params.total_pages(total),
    )


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    project = await _get_project(project_id, ctx.org_id, db)
    return ProjectResponse.from_orm_instance(project)


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: uuid.UUID,
    body: ProjectUpdateRequest,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db),
):
    project = await _get_project(project_id, ctx.org_id, db)

    if body.name is not None:
        project.name = body.name
    if body.description is not None:
        project.description = body.description
    if body.address is not None:
        project.address = body.address
    if body.client_contact_id is not None:
        await _verify_contact(body.client_contact_id, ctx.org_id, db)
        project.client_contact_id = body.client_contact_id

    if body.status is not None and body.status.value != project.status:
        current_status = ProjectStatus(project.status)
        allowed = VALID_TRANSITIONS.get(current_status, [])
        if body.status not in allowed:
            raise BadRequestError(
                f"Cannot transition from '{current_status.value}' to '{body.status.value}'"
            )
        project.status = body.status.value

    await db.flush()
    await db.refresh(project)
    return ProjectResponse.from_orm_instance(project)


async def _get_project(project_id: uuid.UUID, org_id: uuid.UUID, db: AsyncSession) -> Project:
    result = await db.execute(
        select(Project).where(
            Project.id == project_id,
            Project.org_id == org_id,
            Project.is_deleted.is_(False),
        )
    )
    project = result.scalar_one_or_none()
    if not project:
        raise NotFoundError("Project", str(project_id))
    return project


async def _verify_contact(contact_id: uuid.UUID, org_id: uuid.UUID, db: AsyncSession) -> None:
    result = await db.execute(
        select(Contact.id).where(
            Contact.id == contact_id, Contact.org_id == org_id, Contact.is_deleted.is_(False)
        )
    )
    if result.scalar_one_or_none() is None:
        raise NotFoundError("Contact", str(contact_id))
