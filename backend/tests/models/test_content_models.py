"""
Tests for the content data model.

Covers enum wire values, column defaults, the derived helpers on Content and
ProcessedContent, and the unique constraints the processing code relies on
for upserts and one-shot triggers.
"""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.models.chat import ChatMessage, ChatSession, MessageRole
from app.models.content import (
    Content,
    ContentStatus,
    ContentTrigger,
    ContentType,
    ProcessedContent,
    TriggerKind,
)


class TestEnums:

    def test_wire_values(self):
        assert [s.value for s in ContentStatus] == ["processing", "ready", "partial", "complete", "error"]
        assert [t.value for t in ContentType] == ["pdf", "youtube", "text", "audio", "video"]

    def test_str_is_value(self):
        assert str(ContentStatus.COMPLETE) == "complete"
        assert str(ContentType.YOUTUBE) == "youtube"
        assert str(TriggerKind.CLASSIFICATION) == "classification"
        assert f"{ContentStatus.PARTIAL}" == "partial"

    def test_compares_with_plain_strings(self):
        assert ContentStatus("ready") is ContentStatus.READY
        assert ContentType.PDF == "pdf"


class TestContent:

    async def test_defaults(self, db_session, workspace):
        content = Content(
            workspace_id=workspace.id,
            type=ContentType.TEXT,
            status=ContentStatus.PROCESSING,
            title="Processing…",
        )
        db_session.add(content)
        await db_session.commit()

        assert len(content.id) == 36
        assert content.content_metadata == {}
        assert content.created_at is not None
        assert content.file_size is None

    async def test_status_round_trip(self, db_session, make_content):
        content = await make_content(status=ContentStatus.PARTIAL)

        stored = (await db_session.execute(
            select(Content).where(Content.id == content.id).execution_options(populate_existing=True)
        )).scalar_one()

        assert stored.status is ContentStatus.PARTIAL
        assert stored.type is ContentType.PDF

    async def test_metadata_bag_is_a_copy(self, make_content):
        content = await make_content(content_metadata={"storagePath": "pdfs/w/1-a.pdf"})

        bag = content.metadata_bag
        bag["grade"] = 8

        assert content.content_metadata == {"storagePath": "pdfs/w/1-a.pdf"}

    def test_metadata_bag_never_none(self):
        assert Content(content_metadata=None).metadata_bag == {}

    def test_repr_truncates_title(self):
        content = Content(id="c-1", type=ContentType.PDF, status=ContentStatus.READY, title="x" * 50)

        assert repr(content) == f"Content(id=c-1, type=pdf, title='{'x' * 30}', status=ready)"


class TestProcessedContent:

    @pytest.mark.parametrize("summary, expected", [
        (None, False),
        ("", False),
        ("   \n", False),
        ("## Overview", True),
    ])
    def test_has_summary(self, summary, expected):
        assert ProcessedContent(summary=summary).has_summary is expected

    async def test_one_row_per_content(self, db_session, make_content, make_processed):
        content = await make_content()
        await make_processed(content.id)

        db_session.add(ProcessedContent(content_id=content.id, chunks=[]))
        with pytest.raises(IntegrityError):
            await db_session.commit()
        await db_session.rollback()

    async def test_chunks_round_trip(self, db_session, make_content, make_processed):
        content = await make_content()
        chunks = [
            {"index": 0, "text": "Light travels", "page": 1},
            {"index": 1, "text": " in straight lines.", "page": 2},
        ]
        await make_processed(content.id, chunks=chunks)

        stored = (await db_session.execute(
            select(ProcessedContent)
            .where(ProcessedContent.content_id == content.id)
            .execution_options(populate_existing=True)
        )).scalar_one()

        assert stored.chunks == chunks


class TestContentTrigger:

    async def test_one_trigger_per_kind(self, db_session, make_content):
        content = await make_content()
        db_session.add(ContentTrigger(content_id=content.id, kind=TriggerKind.SUMMARY))
        db_session.add(ContentTrigger(content_id=content.id, kind=TriggerKind.CLASSIFICATION))
        await db_session.commit()

        db_session.add(ContentTrigger(content_id=content.id, kind=TriggerKind.SUMMARY))
        with pytest.raises(IntegrityError):
            await db_session.commit()
        await db_session.rollback()


class TestChat:

    async def test_messages_belong_to_session(self, db_session, make_content):
        content = await make_content()
        session = ChatSession(content_id=content.id)
        db_session.add(session)
        await db_session.flush()
        db_session.add(ChatMessage(session_id=session.id, role=MessageRole.USER, message="What is a cube?"))
        await db_session.commit()

        messages = (await db_session.execute(
            select(ChatMessage).where(ChatMessage.session_id == session.id)
        )).scalars().all()

        assert [(m.role, m.message) for m in messages] == [(MessageRole.USER, "What is a cube?")]
        assert messages[0].references is None
