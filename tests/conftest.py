"""
Mainstream - Test Fixtures
==========================

Shared pytest fixtures for all tests.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from passlib.hash import bcrypt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from mainstream.api.deps import (
    create_access_token,
    get_figma_client,
    get_litellm_client,
    get_resend_client,
)
from mainstream.api.main import app
from mainstream.core.database import Base, enable_sqlite_foreign_keys, get_db
from mainstream.core.integrations import FrameThumbnail, LiteLLMError, OEmbedData
from mainstream.core.models import (
    Asset,
    AssetStream,
    AssetVisibility,
    Drop,
    DropStatus,
    PlatformRole,
    Stream,
    StreamMember,
    StreamRole,
    StreamStatus,
    User,
)


# ==========================================================================
# Test Database Setup
# ==========================================================================

# Use in-memory SQLite for tests (fast)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

PASSWORD = "TestPass123!"
PASSWORD_HASH = bcrypt.hash(PASSWORD)


# ==========================================================================
# Fake Integrations
# ==========================================================================

class FakeMailer:
    """Records bulk sends instead of calling Resend."""

    def __init__(self):
        self.enabled = True
        self.sent: list[dict] = []

    async def send_bulk(self, sender: str, recipients: list[str], subject: str, html: str) -> bool:
        self.sent.append({"from": sender, "to": recipients, "subject": subject, "html": html})
        return True


class FakeAI:
    """Returns a canned completion, or fails when ``error`` is set."""

    def __init__(self):
        self.enabled = True
        self.error = False
        self.reply = "A week of checkout polish and new icon work."
        self.prompts: list[str] = []

    async def complete(self, prompt: str, max_tokens: int = 2000) -> str:
        self.prompts.append(prompt)
        if self.error:
            raise LiteLLMError("upstream timeout")
        return self.reply


class FakeFigma:
    def __init__(self):
        self.oembed: Optional[OEmbedData] = OEmbedData(
            title="Checkout Flow",
            thumbnail_url="https://s3.figma.com/thumb.png",
            width=1600,
            height=1200,
        )
        self.frame: Optional[FrameThumbnail] = FrameThumbnail(
            image_url="https://figma-alpha-api.s3.amazonaws.com/images/frame.png",
            width=390,
            height=844,
        )
        self.valid_tokens = {"figd_valid_token_1234"}
        self.frame_requests: list[tuple[str, str]] = []

    async def fetch_oembed(self, url: str) -> Optional[OEmbedData]:
        return self.oembed

    async def verify_token(self, token: str) -> bool:
        return token in self.valid_tokens

    async def fetch_frame_thumbnail(self, url: str, token: str) -> Optional[FrameThumbnail]:
        self.frame_requests.append((url, token))
        return self.frame if "node-id=" in url else None


# ==========================================================================
# Database Fixtures
# ==========================================================================

@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Provide a clean database session for each test.

    Creates all tables before test, drops after.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def ai() -> FakeAI:
    return FakeAI()


@pytest.fixture
def figma() -> FakeFigma:
    return FakeFigma()


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    mailer: FakeMailer,
    ai: FakeAI,
    figma: FakeFigma,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Provide test HTTP client with database and integration overrides.
    """
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_resend_client] = lambda: mailer
    app.dependency_overrides[get_litellm_client] = lambda: ai
    app.dependency_overrides[get_figma_client] = lambda: figma

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ==========================================================================
# Factories
# ==========================================================================

async def make_user(
    db: AsyncSession,
    username: Optional[str] = None,
    display_name: Optional[str] = None,
    role: PlatformRole = PlatformRole.USER,
    is_active: bool = True,
    created_at: Optional[datetime] = None,
) -> User:
    """Create a user. Password: TestPass123!"""
    username = username or f"user_{uuid4().hex[:8]}"
    user = User(
        id=uuid4(),
        username=username,
        display_name=display_name or username.title(),
        email=f"{username}@example.com",
        password_hash=PASSWORD_HASH,
        avatar_url=f"https://avatar.vercel.sh/{username}.png",
        platform_role=role,
        is_active=is_active,
    )
    if created_at is not None:
        user.created_at = created_at
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def make_stream(
    db: AsyncSession,
    owner: User,
    name: Optional[str] = None,
    is_private: bool = False,
    status: StreamStatus = StreamStatus.ACTIVE,
    description: Optional[str] = None,
    members: Optional[dict] = None,
) -> Stream:
    """Create a stream with its owner membership; ``members`` maps user -> StreamRole."""
    stream = Stream(
        id=uuid4(),
        name=name or f"stream-{uuid4().hex[:6]}",
        description=description,
        owner_id=owner.id,
        is_private=is_private,
        status=status,
    )
    db.add(stream)
    await db.flush()
    db.add(StreamMember(stream_id=stream.id, user_id=owner.id, role=StreamRole.OWNER))
    for member, role in (members or {}).items():
        db.add(StreamMember(stream_id=stream.id, user_id=member.id, role=role))
    await db.commit()
    await db.refresh(stream)
    return stream


async def make_asset(
    db: AsyncSession,
    uploader: User,
    title: str = "Untitled shot",
    created_at: Optional[datetime] = None,
    streams: Optional[list] = None,
    visibility: AssetVisibility = AssetVisibility.PUBLIC,
    file_size: Optional[int] = None,
    description: Optional[str] = None,
) -> Asset:
    asset = Asset(
        id=uuid4(),
        title=title,
        description=description,
        url=f"https://cdn.example.com/{uuid4().hex}.png",
        thumbnail_url=f"https://cdn.example.com/{uuid4().hex}_thumb.png",
        uploader_id=uploader.id,
        visibility=visibility,
        file_size=file_size,
        width=1600,
        height=1200,
    )
    if created_at is not None:
        asset.created_at = created_at
    db.add(asset)
    await db.flush()
    for stream in streams or []:
        db.add(AssetStream(asset_id=asset.id, stream_id=stream.id, added_by=uploader.id))
    await db.commit()
    await db.refresh(asset)
    return asset


async def make_drop(
    db: AsyncSession,
    creator: User,
    title: str = "Week 42",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    published: bool = False,
    is_weekly: bool = False,
) -> Drop:
    """A bare drop row, without composition."""
    end = end or utc(2026, 10, 18, 23, 59)
    start = start or end - timedelta(days=7)
    drop = Drop(
        id=uuid4(),
        title=title,
        created_by=creator.id,
        date_range_start=start,
        date_range_end=end,
        is_weekly=is_weekly,
    )
    if published:
        drop.status = DropStatus.PUBLISHED
        drop.published_at = end
    db.add(drop)
    await db.commit()
    await db.refresh(drop)
    return drop


# ==========================================================================
# User Fixtures
# ==========================================================================

@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Create a test user. Password: TestPass123!"""
    return await make_user(db_session, username="alice", display_name="Alice Archer")


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, username="bob", display_name="Bob Baker")


@pytest_asyncio.fixture
async def test_admin(db_session: AsyncSession) -> User:
    return await make_user(
        db_session, username="carol", display_name="Carol Admin", role=PlatformRole.ADMIN
    )


@pytest_asyncio.fixture
async def test_owner(db_session: AsyncSession) -> User:
    return await make_user(
        db_session, username="olivia", display_name="Olivia Owner", role=PlatformRole.OWNER
    )


# ==========================================================================
# Auth Fixtures
# ==========================================================================

def headers_for(user: User) -> dict[str, str]:
    token = create_access_token(user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(test_user: User) -> dict[str, str]:
    """Get authorization headers for test user."""
    return headers_for(test_user)


@pytest.fixture
def other_headers(other_user: User) -> dict[str, str]:
    return headers_for(other_user)


@pytest.fixture
def admin_headers(test_admin: User) -> dict[str, str]:
    """Get authorization headers for admin user."""
    return headers_for(test_admin)


@pytest.fixture
def owner_headers(test_owner: User) -> dict[str, str]:
    return headers_for(test_owner)


# ==========================================================================
# Helper Functions
# ==========================================================================

def unique_email() -> str:
    """Generate a unique email for tests."""
    return f"test_{uuid4().hex[:8]}@example.com"


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)
