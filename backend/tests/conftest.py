"""
Mindak Reservations Backend — Test Configuration (conftest.py)
==============================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Environment variables are set before any mindak import so the
       settings singleton, the engine and the file service pick them up.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── mock_db_session:  AsyncMock session for pure unit tests
    ├── db_engine:        SQLite (aiosqlite) engine with every table created
    ├── session_factory:  async_sessionmaker bound to db_engine
    ├── db_session:       one AsyncSession from session_factory
    ├── catalog:          a category with two active services
    ├── podcast_form:     the general podcast questions with their options
    ├── temp_storage:     temporary directory for file operations
    ├── sample_image_bytes: PNG header bytes for upload tests
    └── test_client:      HTTPX AsyncClient bound to the app and db_engine
"""

import os
import tempfile
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport


# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

_TEST_DIR = tempfile.mkdtemp(prefix="mindak_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/mindak_test.db"
os.environ["STORAGE_ROOT"] = os.path.join(_TEST_DIR, "storage")
os.environ["LOG_LEVEL"] = "WARNING"
# The module-level app keeps one limiter for the whole run
os.environ["RATE_LIMIT_REQUESTS"] = "1000"

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

from mindak.database import Base, get_db_session  # noqa: E402
from mindak.models.form import FormType, QuestionType  # noqa: E402
from mindak.models.service import Service, ServiceCategory  # noqa: E402
from mindak.schemas.form import AnswerOptionCreate, QuestionCreate  # noqa: E402
from mindak.services.form_service import form_service  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Unit-test Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    A mock async database session for tests that must not touch a database.

    Usage:
        mock_db_session.execute.return_value.scalar_one_or_none.return_value = row
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.delete = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def temp_storage(tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def sample_image_bytes():
    """
    PNG signature followed by an IHDR chunk for a 1x1 image and IEND.

    Enough for libmagic to report image/png; not a decodable picture.
    """
    return (
        b"\x89PNG\r\n\x1a\n"
        b"\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00\x1f\x15\xc4\x89"
        b"\x00\x00\x00\x00IEND\xaeB`\x82"
    )


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """
    A file-backed SQLite database per test.

    A file (not :memory:) so that several sessions see each other's commits.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'mindak.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def catalog(db_session):
    """One active category ("Production") with services "Editing" and "Mixing"."""
    category = ServiceCategory(name="Production", description="Post-production", is_active=True)
    db_session.add(category)
    await db_session.flush()

    editing = Service(
        name="Editing", price=150, category_id=category.id, is_active=True, display_order=1
    )
    mixing = Service(
        name="Mixing", price=90, category_id=category.id, is_active=True, display_order=2
    )
    db_session.add_all([editing, mixing])
    await db_session.commit()
    return SimpleNamespace(category=category, editing=editing, mixing=mixing)


@pytest_asyncio.fixture
async def podcast_form(db_session):
    """
    General podcast questions, in order:
        1. name    text, required
        2. email   email, required
        3. format  select, required (audio | video)
        4. topics  checkbox, optional (tech | music | health)
        5. date    date, optional
    """
    name = await form_service.create_question(
        db_session,
        FormType.PODCAST,
        QuestionCreate(question_text="What is your full name?", question_type=QuestionType.TEXT, required=True),
    )
    email = await form_service.create_question(
        db_session,
        FormType.PODCAST,
        QuestionCreate(question_text="What is your email address?", question_type=QuestionType.EMAIL, required=True),
    )
    fmt = await form_service.create_question(
        db_session,
        FormType.PODCAST,
        QuestionCreate(
            question_text="Which format?",
            question_type=QuestionType.SELECT,
            required=True,
            answers=[
                AnswerOptionCreate(answer_text="Audio only", answer_value="audio"),
                AnswerOptionCreate(answer_text="Video", answer_value="video"),
            ],
        ),
    )
    topics = await form_service.create_question(
        db_session,
        FormType.PODCAST,
        QuestionCreate(
            question_text="Topics you want to cover",
            question_type=QuestionType.CHECKBOX,
            answers=[
                AnswerOptionCreate(answer_text="Technology", answer_value="tech"),
                AnswerOptionCreate(answer_text="Music", answer_value="music"),
                AnswerOptionCreate(answer_text="Health", answer_value="health"),
            ],
        ),
    )
    date = await form_service.create_question(
        db_session,
        FormType.PODCAST,
        QuestionCreate(question_text="Preferred recording date", question_type=QuestionType.DATE),
    )
    await db_session.commit()
    return SimpleNamespace(name=name, email=email, format=fmt, topics=topics, date=date)


@pytest.fixture
def valid_podcast_answers(podcast_form):
    return {
        str(podcast_form.name.id): "Jane Doe",
        str(podcast_form.email.id): "jane@example.com",
        str(podcast_form.format.id): "video",
    }


# ══════════════════════════════════════════════════════════════════════════
# HTTP Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(db_engine, session_factory, monkeypatch):
    """
    HTTPX AsyncClient talking to the app through ASGITransport.

    Request sessions and the health check use the per-test database.
    """
    from mindak.main import app
    monkeypatch.setattr("mindak.routes.health.engine", db_engine)

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
