import uuid
from collections.abc import AsyncGenerator
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import JSON, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from arcline.common.enums import MembershipRole
from arcline.common.security import create_access_token, get_password_hash
from arcline.config import settings
from arcline.db.base import Base
from arcline.db.models import *  # noqa: F401,F403 - ensure all models loaded

# Use in-memory SQLite for testing - remap JSONB to JSON
TEST_DATABASE_URL = "sqlite+aiosqlite://"


# Make JSONB render as JSON for SQLite
@event.listens_for(Base.metadata, "before_create")
def _remap_jsonb(target, connection, **kw):
    if connection.dialect.name == "sqlite":
        for table in target.tables.values():
            for column in table.columns:
                if isinstance(column.type, JSONB):
                    column.type = JSON()


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest correctly on SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(db_session):
    from arcline.api.deps import get_db
    from arcline.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _make_user(db_session, prefix: str, full_name: str):
    from arcline.db.models.user import User

    user = User(
        id=uuid.uuid4(),
        email=f"{prefix}_{uuid.uuid4().hex[:8]}@test.com",
        hashed_password=get_password_hash("testpass123"),
        full_name=full_name,
    )
    db_session.add(user)
    await db_session.flush()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def owner_user(db_session):
    return await _make_user(db_session, "owner", "Test Owner")


@pytest.fixture
async def member_user(db_session):
    return await _make_user(db_session, "member", "Test Member")


@pytest.fixture
async def organization(db_session, owner_user, member_user):
    from arcline.db.models.organization import Membership, Organization

    org = Organization(name="Test Builders", accounting_settings={})
    db_session.add(org)
    await db_session.flush()

    db_session.add_all(
        [
            Membership(
                org_id=org.id, organization=org, user_id=owner_user.id, role=MembershipRole.OWNER.value
            ),
            Membership(
                org_id=org.id, organization=org, user_id=member_user.id, role=MembershipRole.MEMBER.value
            ),
        ]
    )
    await db_session.flush()
    await db_session.refresh(org)
    return org


@pytest.fixture
def owner_token(owner_user):
    return create_access_token({"sub": str(owner_user.id)})


@pytest.fixture
def auth_headers(owner_token, organization):
    return {"Authorization": f"Bearer {owner_token}", "X-Org-Id": str(organization.id)}


@pytest.fixture
def member_headers(member_user, organization):
    token = create_access_token({"sub": str(member_user.id)})
    return {"Authorization": f"Bearer {token}", "X-Org-Id": str(organization.id)}


@pytest.fixture
async def contact(db_session, organization):
    from arcline.db.models.contact import Contact

    c = Contact(
        org_id=organization.id,
        full_name="Casey Client",
        email="casey@client.example",
        address="12 Oak Lane, Springfield",
    )
    db_session.add(c)
    await db_session.flush()
    await db_session.refresh(c)
    return c


@pytest.fixture
async def project(db_session, organization, owner_user, contact):
    from arcline.db.models.project import Project

    p = Project(
        org_id=organization.id,
        name="Oak Lane Remodel",
        address="12 Oak Lane, Springfield",
        client_contact_id=contact.id,
        created_by=owner_user.id,
    )
    db_session.add(p)
    await db_session.flush()
    await db_session.refresh(p)
    return p


@pytest.fixture(autouse=True)
def local_storage(tmp_path, monkeypatch):
    """Keep uploads inside the test's temp directory."""
    monkeypatch.setattr(settings, "STORAGE_LOCAL_PATH", str(tmp_path / "storage"))


@pytest.fixture(autouse=True)
def mock_integrations():
    """Mock external integration clients used in services and endpoint handlers."""
    with patch(
        "arcline.integrations.sendgrid.EmailClient.send_email",
        return_value={"message_id": "mock-123", "status": "sent"},
    ) as send_email:
        yield send_email
