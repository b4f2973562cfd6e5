"""
Pytest configuration and fixtures.

This file is automatically discovered by pytest and provides
shared fixtures for all test modules.

Every test gets its own SQLite database file (aiosqlite), so sessions opened
by the processor's session factory see the same rows as the test session.

References:
-----------
- Pytest Fixtures: https://docs.pytest.org/en/stable/fixture.html
- FastAPI Testing: https://fastapi.tiangolo.com/advanced/async-tests/
"""

import os

# Must be set before app modules read settings or build the engine
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["LOG_FORMAT"] = "text"
os.environ.pop("ANTHROPIC_API_KEY", None)
os.environ.pop("YOUTUBE_API_KEY", None)

from typing import AsyncGenerator, Optional
from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.db.base import Base
from app.db.deps import get_db
from app.main import app
from app.models.content import Content, ContentStatus, ContentType, ProcessedContent
from app.models.workspace import Workspace


# ================================
# Environment Fixtures
# ================================

@pytest.fixture(autouse=True)
def offline_tokenizer():
    """
    Keep the chunker offline: tiktoken downloads its encodings on first use,
    so tests run on the character-based token estimate.
    """
    with patch(
        "app.services.processors.chunker.tiktoken.get_encoding",
        side_effect=RuntimeError("offline"),
    ):
        yield


# ================================
# Database Fixtures
# ================================

@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    Create a test database engine backed by a per-test SQLite file.

    NullPool gives each session its own connection, as in the workers.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        echo=False,  # Set to True for SQL debugging
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    """Session factory for code that opens its own sessions (processor, tasks)."""
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session


# ================================
# FastAPI Client Fixtures
# ================================

@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing FastAPI endpoints.

    Overrides the get_db dependency to use the test database session.

    Usage:
        async def test_something(client: AsyncClient):
            response = await client.get("/api/v1/content/abc/processed")
            assert response.status_code == 404
    """
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ================================
# Data Fixtures
# ================================

@pytest_asyncio.fixture
async def workspace(db_session: AsyncSession) -> Workspace:
    workspace = Workspace(owner_id="user-1", name="Class 8 Maths")
    db_session.add(workspace)
    await db_session.commit()
    return workspace


@pytest.fixture
def make_content(db_session: AsyncSession, workspace: Workspace):
    """
    Factory for Content rows.

    Usage:
        content = await make_content(type=ContentType.TEXT, extracted_text="...")
    """

    async def _make(**overrides) -> Content:
        values = {
            "workspace_id": workspace.id,
            "type": ContentType.PDF,
            "status": ContentStatus.PROCESSING,
            "title": "Processing…",
            "content_metadata": {},
        }
        values.update(overrides)
        content = Content(**values)
        db_session.add(content)
        await db_session.commit()
        return content

    return _make


@pytest.fixture
def make_processed(db_session: AsyncSession):
    async def _make(content_id: str, **overrides) -> ProcessedContent:
        processed = ProcessedContent(content_id=content_id, chunks=overrides.pop("chunks", []), **overrides)
        db_session.add(processed)
        await db_session.commit()
        return processed

    return _make


def _pdf_string(text: str) -> str:
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def build_pdf(pages: list[list[str]], title: Optional[str] = None) -> bytes:
    """
    Minimal text PDF: one Helvetica text block per page, one line per entry.

    Usage:
        data = build_pdf([["1 A SQUARE AND A CUBE", "Grade 8"]], title="Maths")
    """
    objects: list[str] = [
        "<< /Type /Catalog /Pages 2 0 R >>",
        "",  # pages tree, filled in below
        "<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    page_refs = []
    for lines in pages:
        body = " T* ".join(f"({_pdf_string(line)}) Tj" for line in lines)
        stream = f"BT /F1 12 Tf 14 TL 72 720 Td {body} ET"
        objects.append(f"<< /Length {len(stream.encode('latin-1'))} >>\nstream\n{stream}\nendstream")
        content_ref = len(objects)
        objects.append(
            "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
            f"/Resources << /Font << /F1 3 0 R >> >> /Contents {content_ref} 0 R >>"
        )
        page_refs.append(f"{len(objects)} 0 R")
    objects[1] = f"<< /Type /Pages /Kids [{' '.join(page_refs)}] /Count {len(page_refs)} >>"

    info_ref = None
    if title is not None:
        objects.append(f"<< /Title ({_pdf_string(title)}) >>")
        info_ref = len(objects)

    output = b"%PDF-1.4\n"
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(output))
        output += f"{number} 0 obj\n{body}\nendobj\n".encode("latin-1")

    xref_offset = len(output)
    xref = f"xref\n0 {len(objects) + 1}\n0000000000 65535 f \n"
    xref += "".join(f"{offset:010d} 00000 n \n" for offset in offsets)
    trailer = f"<< /Size {len(objects) + 1} /Root 1 0 R"
    if info_ref:
        trailer += f" /Info {info_ref} 0 R"
    trailer += " >>"
    output += f"{xref}trailer\n{trailer}\nstartxref\n{xref_offset}\n%%EOF\n".encode("latin-1")
    return output


@pytest.fixture
def make_pdf():
    return build_pdf


@pytest.fixture
def blob_root(tmp_path):
    root = tmp_path / "blobs"
    root.mkdir()
    return root


# ================================
# Pytest Hooks
# ================================

def pytest_addoption(parser):
    """Add custom pytest options."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests that require network access and real API keys"
    )


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires network and API keys)"
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(reason="needs --run-integration")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)
