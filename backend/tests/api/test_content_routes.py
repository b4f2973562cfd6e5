"""
Tests for the content ingestion and reconciliation endpoints.

Uses the ``client`` fixture (ASGI transport, test database session). The
gateway's scheduler and every AI call are mocked.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest
from httpx import AsyncClient

from app.main import app
from app.models.chat import ChatMessage, ChatSession, MessageRole
from app.models.content import ContentStatus, ContentType, TriggerKind
from app.services.ai_service import AIServiceError, get_ai_service
from app.services.content_store import ContentStore
from app.services.ingestion import IngestionGateway, get_ingestion_gateway
from app.services.pdf_service import PDFService
from app.services.storage import LocalBlobStore

API = "/api/v1"


# ================================
# Fixtures
# ================================

@pytest.fixture
def scheduler():
    return Mock()


@pytest.fixture
def ai_service():
    service = Mock()
    service.summarize = AsyncMock(return_value="## Overview\nGenerated.")
    service.classify = AsyncMock()
    return service


@pytest.fixture(autouse=True)
def overrides(blob_root, scheduler, ai_service):
    gateway = IngestionGateway(
        blob_store=LocalBlobStore(str(blob_root)),
        pdf_service=PDFService(),
        youtube_service=Mock(),
        scheduler=scheduler,
    )
    app.dependency_overrides[get_ingestion_gateway] = lambda: gateway
    app.dependency_overrides[get_ai_service] = lambda: ai_service
    yield
    app.dependency_overrides.pop(get_ingestion_gateway, None)
    app.dependency_overrides.pop(get_ai_service, None)


# ================================
# POST /ingest
# ================================

class TestIngest:

    async def test_ingest_text(self, client: AsyncClient, workspace, scheduler, db_session):
        response = await client.post(f"{API}/ingest", data={
            "type": "text",
            "workspaceId": workspace.id,
            "text": "WORK AND ENERGY\nWork is done by a force.",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        content_id = body["contentId"]
        scheduler.assert_called_once_with(content_id)

        content = await ContentStore(db_session).get_content(content_id)
        assert content.status == ContentStatus.READY
        assert content.title == "WORK AND ENERGY"

    async def test_ingest_pdf_upload(self, client: AsyncClient, workspace, make_pdf, blob_root):
        data = make_pdf([["Chapter 9: Gravitation", "We have learnt about motion."]])

        response = await client.post(
            f"{API}/ingest",
            data={"type": "pdf", "workspaceId": workspace.id},
            files={"file": ("gravitation.pdf", data, "application/pdf")},
        )

        assert response.status_code == 200
        content_id = response.json()["contentId"]

        processed = await client.get(f"{API}/content/{content_id}/processed")
        content = processed.json()["content"]
        assert content["title"] == "Gravitation"
        assert content["type"] == "pdf"
        assert content["file_size"] == len(data)
        assert (blob_root / content["metadata"]["storagePath"]).is_file()

    async def test_missing_type(self, client: AsyncClient, workspace):
        response = await client.post(f"{API}/ingest", data={"workspaceId": workspace.id, "text": "x"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_input"

    async def test_missing_text(self, client: AsyncClient, workspace, scheduler):
        response = await client.post(f"{API}/ingest", data={"type": "text", "workspaceId": workspace.id})

        assert response.status_code == 400
        scheduler.assert_not_called()

    async def test_unknown_workspace(self, client: AsyncClient):
        response = await client.post(f"{API}/ingest", data={"type": "text", "workspaceId": "nope", "text": "x"})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"


# ================================
# GET /content/{id}/processed
# ================================

class TestGetProcessed:

    async def test_without_artifacts(self, client: AsyncClient, make_content):
        content = await make_content(content_metadata={"storagePath": "pdfs/w/1-a.pdf"})

        response = await client.get(f"{API}/content/{content.id}/processed")

        assert response.status_code == 200
        body = response.json()
        assert body["processed"] is None
        assert body["content"]["status"] == "processing"
        assert body["content"]["title"] == "Processing…"
        assert body["content"]["metadata"] == {"storagePath": "pdfs/w/1-a.pdf"}

    async def test_with_summary(self, client: AsyncClient, make_content, make_processed):
        content = await make_content(status=ContentStatus.COMPLETE, title="Gravitation")
        await make_processed(content.id, chunks=[{"index": 0, "text": "Body", "page": 1}], summary="## Overview")

        body = (await client.get(f"{API}/content/{content.id}/processed")).json()

        assert body["content"]["status"] == "complete"
        assert body["processed"]["summary"] == "## Overview"
        assert body["processed"]["chunks"] == [{"index": 0, "text": "Body", "page": 1}]

    async def test_unknown_content(self, client: AsyncClient):
        response = await client.get(f"{API}/content/missing/processed")

        assert response.status_code == 404
        assert response.json() == {"error": {"code": "not_found", "message": "Content missing not found"}}


# ================================
# POST /process
# ================================

class TestProcessSummary:

    async def test_generates_summary(self, client: AsyncClient, make_content, ai_service):
        content = await make_content(type=ContentType.TEXT, status=ContentStatus.READY, extracted_text="Notes.")

        response = await client.post(f"{API}/process", json={"contentId": content.id})

        assert response.status_code == 200
        assert response.json() == {"success": True, "summary": "## Overview\nGenerated.", "status": "complete"}

    async def test_in_progress(self, client: AsyncClient, make_content, db_session, ai_service):
        content = await make_content(type=ContentType.TEXT, status=ContentStatus.READY, extracted_text="Notes.")
        await ContentStore(db_session).claim_trigger(content.id, TriggerKind.SUMMARY)

        response = await client.post(f"{API}/process", json={"contentId": content.id})

        assert response.status_code == 202
        assert response.json()["status"] == "in_progress"
        ai_service.summarize.assert_not_called()

    async def test_ai_failure(self, client: AsyncClient, make_content, ai_service):
        ai_service.summarize.side_effect = AIServiceError("overloaded")
        content = await make_content(type=ContentType.TEXT, status=ContentStatus.READY, extracted_text="Notes.")

        response = await client.post(f"{API}/process", json={"contentId": content.id})

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "refinement_failed"

    async def test_missing_content_id(self, client: AsyncClient):
        response = await client.post(f"{API}/process", json={})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_input"

    async def test_unknown_content(self, client: AsyncClient):
        response = await client.post(f"{API}/process", json={"contentId": "missing"})

        assert response.status_code == 404


# ================================
# POST /content/{id}/classify
# ================================

class TestClassify:

    async def test_not_a_pdf(self, client: AsyncClient, make_content):
        content = await make_content(type=ContentType.TEXT, extracted_text="Notes.")

        response = await client.post(f"{API}/content/{content.id}/classify")

        assert response.status_code == 400

    async def test_cached_result(self, client: AsyncClient, make_content, db_session, ai_service):
        content = await make_content(content_metadata={"storagePath": "pdfs/w/1-a.pdf"})
        store = ContentStore(db_session)
        await store.claim_trigger(content.id, TriggerKind.CLASSIFICATION)
        await store.store_trigger_result(content.id, TriggerKind.CLASSIFICATION, {"display_title": "Gravitation"})

        response = await client.post(f"{API}/content/{content.id}/classify")

        assert response.status_code == 200
        assert response.json() == {"success": True, "classification": {"display_title": "Gravitation"}, "cached": True}
        ai_service.classify.assert_not_called()

    async def test_in_progress(self, client: AsyncClient, make_content, db_session):
        content = await make_content(content_metadata={"storagePath": "pdfs/w/1-a.pdf"})
        await ContentStore(db_session).claim_trigger(content.id, TriggerKind.CLASSIFICATION)

        response = await client.post(f"{API}/content/{content.id}/classify")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "content_busy"


# ================================
# GET /content/{id}/chat-messages
# ================================

class TestChatMessages:

    async def test_lists_messages(self, client: AsyncClient, make_content, db_session):
        content = await make_content()
        session = ChatSession(content_id=content.id)
        db_session.add(session)
        await db_session.flush()
        now = datetime.now(timezone.utc)
        db_session.add_all([
            ChatMessage(session_id=session.id, role=MessageRole.USER, message="What is a cube?", created_at=now),
            ChatMessage(
                session_id=session.id,
                role=MessageRole.ASSISTANT,
                message="A number multiplied by itself three times.",
                references=[{"chunk_index": 0, "page": 1}],
                created_at=now + timedelta(seconds=2),
            ),
        ])
        await db_session.commit()

        response = await client.get(f"{API}/content/{content.id}/chat-messages")

        assert response.status_code == 200
        messages = response.json()["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant"]
        assert messages[1]["references"] == [{"chunk_index": 0, "page": 1}]

    async def test_unknown_content(self, client: AsyncClient):
        response = await client.get(f"{API}/content/missing/chat-messages")

        assert response.status_code == 404
