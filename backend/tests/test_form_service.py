"""
Mindak Reservations Backend — Form Question Service Tests
=========================================================

What:  Question and answer-option management against SQLite.

What we test:
    ✅ Orders stay 1..n among active rows through create/deactivate/delete
    ✅ Reorder applies the full id list; a partial list changes nothing
    ✅ Group consistency checks (section vs service)
    ✅ Referenced definitions are superseded, never edited in place
    ✅ Public form composition and answer images
"""

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.dialects import postgresql

from mindak.exceptions import ConflictError, NotFoundError, ValidationError
from mindak.models.form import FormType, QuestionType, SectionType
from mindak.schemas.form import (
    AnswerOptionCreate,
    AnswerOptionUpdate,
    QuestionCreate,
    QuestionUpdate,
)
from mindak.services.form_service import FormQuestionService


async def active_order(service, db, form_type=FormType.PODCAST, **kwargs):
    return [
        (q.id, q.order) for q in await service.list_questions(db, form_type, **kwargs)
    ]


class TestQuestionCreation:

    def setup_method(self):
        self.service = FormQuestionService()

    @pytest.mark.asyncio
    async def test_questions_are_appended(self, db_session, podcast_form):
        questions = await self.service.list_questions(db_session, FormType.PODCAST)
        assert [q.order for q in questions] == [1, 2, 3, 4, 5]
        assert questions[0].id == podcast_form.name.id
        assert [a.answer_value for a in questions[2].answers] == ["audio", "video"]
        assert questions[0].answers == []

    @pytest.mark.asyncio
    async def test_podcast_questions_are_general_only(self, db_session, catalog):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_question(
                db_session,
                FormType.PODCAST,
                QuestionCreate(
                    section_type=SectionType.SERVICE_SPECIFIC,
                    service_id=catalog.editing.id,
                    question_text="Anything else?",
                    question_type=QuestionType.TEXT,
                ),
            )
        assert exc_info.value.code == "invalid_section"

    @pytest.mark.asyncio
    async def test_service_section_consistency(self, db_session, catalog):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_question(
                db_session,
                FormType.SERVICES,
                QuestionCreate(
                    section_type=SectionType.SERVICE_SPECIFIC,
                    question_text="Length?",
                    question_type=QuestionType.TEXT,
                ),
            )
        assert exc_info.value.code == "missing_service"

        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_question(
                db_session,
                FormType.SERVICES,
                QuestionCreate(
                    service_id=catalog.editing.id,
                    question_text="Length?",
                    question_type=QuestionType.TEXT,
                ),
            )
        assert exc_info.value.code == "unexpected_service"

        with pytest.raises(NotFoundError):
            await self.service.create_question(
                db_session,
                FormType.SERVICES,
                QuestionCreate(
                    section_type=SectionType.SERVICE_SPECIFIC,
                    service_id=uuid.uuid4(),
                    question_text="Length?",
                    question_type=QuestionType.TEXT,
                ),
            )

    @pytest.mark.asyncio
    async def test_service_sections_are_ordered_independently(self, db_session, catalog):
        for service in (catalog.editing, catalog.mixing):
            created = await self.service.create_question(
                db_session,
                FormType.SERVICES,
                QuestionCreate(
                    section_type=SectionType.SERVICE_SPECIFIC,
                    service_id=service.id,
                    question_text=f"Notes for {service.name}",
                    question_type=QuestionType.TEXTAREA,
                ),
            )
            assert created.order == 1

    @pytest.mark.asyncio
    async def test_answers_only_for_choice_questions(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_question(
                db_session,
                FormType.PODCAST,
                QuestionCreate(
                    question_text="Name",
                    question_type=QuestionType.TEXT,
                    answers=[AnswerOptionCreate(answer_text="A", answer_value="a")],
                ),
            )
        assert exc_info.value.code == "unexpected_answers"

    @pytest.mark.asyncio
    async def test_duplicate_answer_values(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_question(
                db_session,
                FormType.PODCAST,
                QuestionCreate(
                    question_text="Pick one",
                    question_type=QuestionType.RADIO,
                    answers=[
                        AnswerOptionCreate(answer_text="Yes", answer_value="y"),
                        AnswerOptionCreate(answer_text="Yep", answer_value="y"),
                    ],
                ),
            )
        assert exc_info.value.code == "duplicate_answer_value"


class TestReorder:

    def setup_method(self):
        self.service = FormQuestionService()

    @pytest.mark.asyncio
    async def test_reorder_applies_sequence(self, db_session, podcast_form):
        ids = [
            podcast_form.date.id,
            podcast_form.name.id,
            podcast_form.topics.id,
            podcast_form.email.id,
            podcast_form.format.id,
        ]
        result = await self.service.reorder(
            db_session, FormType.PODCAST, SectionType.GENERAL, None, ids
        )
        await db_session.commit()

        assert [q.id for q in result] == ids
        assert await active_order(self.service, db_session) == [
            (qid, index) for index, qid in enumerate(ids, start=1)
        ]

    @pytest.mark.asyncio
    async def test_reorder_with_missing_id_changes_nothing(self, db_session, podcast_form):
        before = await active_order(self.service, db_session)
        with pytest.raises(ValidationError) as exc_info:
            await self.service.reorder(
                db_session,
                FormType.PODCAST,
                SectionType.GENERAL,
                None,
                [podcast_form.email.id, podcast_form.name.id],
            )
        assert exc_info.value.code == "reorder_mismatch"
        assert len(exc_info.value.context["missing"]) == 3
        await db_session.rollback()

        assert await active_order(self.service, db_session) == before

    @pytest.mark.asyncio
    async def test_reorder_rejects_duplicates_and_strangers(self, db_session, podcast_form):
        ids = [q for q, _ in await active_order(self.service, db_session)]
        with pytest.raises(ValidationError):
            await self.service.reorder(
                db_session, FormType.PODCAST, SectionType.GENERAL, None, ids + [ids[0]]
            )
        with pytest.raises(ValidationError):
            await self.service.reorder(
                db_session, FormType.PODCAST, SectionType.GENERAL, None, ids[:-1] + [uuid.uuid4()]
            )


class TestDeactivateAndDelete:

    def setup_method(self):
        self.service = FormQuestionService()

    @pytest.mark.asyncio
    async def test_deactivate_closes_gap(self, db_session, podcast_form):
        result = await self.service.deactivate_question(db_session, podcast_form.format.id)
        await db_session.commit()

        assert result.is_active is False
        assert await active_order(self.service, db_session) == [
            (podcast_form.name.id, 1),
            (podcast_form.email.id, 2),
            (podcast_form.topics.id, 3),
            (podcast_form.date.id, 4),
        ]
        everything = await self.service.list_questions(
            db_session, FormType.PODCAST, include_inactive=True
        )
        assert len(everything) == 5

    @pytest.mark.asyncio
    async def test_new_question_after_deactivation(self, db_session, podcast_form):
        await self.service.deactivate_question(db_session, podcast_form.name.id)
        created = await self.service.create_question(
            db_session,
            FormType.PODCAST,
            QuestionCreate(question_text="Company", question_type=QuestionType.TEXT),
        )
        assert created.order == 5

    @pytest.mark.asyncio
    async def test_unreferenced_delete_is_hard(self, db_session, podcast_form):
        hard = await self.service.delete_question(db_session, podcast_form.format.id)
        await db_session.commit()

        assert hard is True
        everything = await self.service.list_questions(
            db_session, FormType.PODCAST, include_inactive=True
        )
        assert podcast_form.format.id not in {q.id for q in everything}
        assert [q.order for q in everything] == [1, 2, 3, 4]
        with pytest.raises(NotFoundError):
            await self.service.list_answers(db_session, podcast_form.format.id)

    @pytest.mark.asyncio
    async def test_referenced_delete_deactivates(self, db_session, podcast_form):
        await self.service.mark_referenced(db_session, [podcast_form.email.id], [])
        hard = await self.service.delete_question(db_session, podcast_form.email.id)
        await db_session.commit()

        assert hard is False
        everything = await self.service.list_questions(
            db_session, FormType.PODCAST, include_inactive=True
        )
        email = next(q for q in everything if q.id == podcast_form.email.id)
        assert email.is_active is False
        assert [q.order for q in everything if q.is_active] == [1, 2, 3, 4]


class TestQuestionUpdates:

    def setup_method(self):
        self.service = FormQuestionService()

    @pytest.mark.asyncio
    async def test_unreferenced_update_in_place(self, db_session, podcast_form):
        updated = await self.service.update_question(
            db_session,
            podcast_form.name.id,
            QuestionUpdate(question_text="Your name", placeholder="Jane Doe", required=False),
        )
        assert updated.id == podcast_form.name.id
        assert updated.question_text == "Your name"
        assert updated.placeholder == "Jane Doe"
        assert updated.required is False
        assert updated.order == 1

    @pytest.mark.asyncio
    async def test_referenced_choice_question_is_superseded(self, db_session, podcast_form):
        await self.service.mark_referenced(db_session, [podcast_form.format.id], [])
        updated = await self.service.update_question(
            db_session, podcast_form.format.id, QuestionUpdate(question_text="Recording format")
        )
        await db_session.commit()

        assert updated.id != podcast_form.format.id
        assert updated.supersedes_id == podcast_form.format.id
        assert updated.order == 3
        assert [a.answer_value for a in updated.answers] == ["audio", "video"]

        active = await self.service.list_questions(db_session, FormType.PODCAST)
        assert [q.id for q in active][2] == updated.id
        assert [q.order for q in active] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_help_text_change_on_referenced_question_is_in_place(self, db_session, podcast_form):
        await self.service.mark_referenced(db_session, [podcast_form.name.id], [])
        updated = await self.service.update_question(
            db_session, podcast_form.name.id, QuestionUpdate(help_text="As on your ID")
        )
        assert updated.id == podcast_form.name.id
        assert updated.help_text == "As on your ID"

    @pytest.mark.asyncio
    async def test_inactive_question_cannot_be_edited(self, db_session, podcast_form):
        await self.service.deactivate_question(db_session, podcast_form.date.id)
        with pytest.raises(ValidationError) as exc_info:
            await self.service.update_question(
                db_session, podcast_form.date.id, QuestionUpdate(question_text="When?")
            )
        assert exc_info.value.code == "question_inactive"


class TestAnswerOptions:

    def setup_method(self):
        self.service = FormQuestionService()

    @pytest.mark.asyncio
    async def test_create_appends(self, db_session, podcast_form):
        created = await self.service.create_answer(
            db_session,
            podcast_form.topics.id,
            AnswerOptionCreate(answer_text=" Comedy ", answer_value="comedy"),
        )
        assert created.order == 4
        assert created.answer_text == "Comedy"

    @pytest.mark.asyncio
    async def test_create_rejects_duplicates_and_free_text(self, db_session, podcast_form):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_answer(
                db_session,
                podcast_form.topics.id,
                AnswerOptionCreate(answer_text="Tech again", answer_value="tech"),
            )
        assert exc_info.value.code == "duplicate_answer_value"

        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_answer(
                db_session,
                podcast_form.name.id,
                AnswerOptionCreate(answer_text="Jane", answer_value="jane"),
            )
        assert exc_info.value.code == "not_choice_question"

    @pytest.mark.asyncio
    async def test_reorder_and_delete_compact(self, db_session, podcast_form):
        tech, music, health = podcast_form.topics.answers
        reordered = await self.service.reorder_answers(
            db_session, podcast_form.topics.id, [health.id, tech.id, music.id]
        )
        assert [(a.id, a.order) for a in reordered] == [(health.id, 1), (tech.id, 2), (music.id, 3)]

        assert await self.service.delete_answer(db_session, tech.id) is True
        await db_session.commit()
        remaining = await self.service.list_answers(db_session, podcast_form.topics.id)
        assert [(a.id, a.order) for a in remaining] == [(health.id, 1), (music.id, 2)]

    @pytest.mark.asyncio
    async def test_referenced_answer_is_superseded(self, db_session, podcast_form):
        audio, video = podcast_form.format.answers
        await self.service.mark_referenced(db_session, [], [audio.id])

        replacement = await self.service.update_answer(
            db_session, audio.id, AnswerOptionUpdate(answer_text="Audio (mp3)")
        )
        await db_session.commit()
        assert replacement.id != audio.id
        assert replacement.order == 1
        assert replacement.answer_value == "audio"

        everything = await self.service.list_answers(
            db_session, podcast_form.format.id, include_inactive=True
        )
        old = next(a for a in everything if a.id == audio.id)
        assert old.is_active is False
        assert old.answer_text == "Audio only"

    @pytest.mark.asyncio
    async def test_attach_image(self, db_session, podcast_form):
        video = podcast_form.format.answers[1]
        with patch("mindak.services.form_service.file_service") as mock_files:
            mock_files.validate_and_store = AsyncMock(
                return_value=("/abs/answers/2024/01/15/x.png", "answers/2024/01/15/x.png")
            )
            mock_files.public_url = MagicMock(return_value="/api/files/answers/2024/01/15/x.png")

            result = await self.service.attach_answer_image(
                db_session, video.id, filename="video.png", content=b"png", content_length=3
            )

        assert result.image_url == "/api/files/answers/2024/01/15/x.png"
        mock_files.validate_and_store.assert_awaited_once_with(
            filename="video.png", content=b"png", content_length=3
        )


class TestClientForm:

    def setup_method(self):
        self.service = FormQuestionService()

    @pytest.mark.asyncio
    async def test_services_form_skips_inactive_services(self, db_session, catalog):
        general = await self.service.create_question(
            db_session,
            FormType.SERVICES,
            QuestionCreate(question_text="Your email", question_type=QuestionType.EMAIL, required=True),
        )
        questions = {}
        for service in (catalog.editing, catalog.mixing):
            questions[service.name] = await self.service.create_question(
                db_session,
                FormType.SERVICES,
                QuestionCreate(
                    section_type=SectionType.SERVICE_SPECIFIC,
                    service_id=service.id,
                    question_text=f"About {service.name}",
                    question_type=QuestionType.TEXT,
                ),
            )
        catalog.editing.is_active = False
        await db_session.commit()

        form = await self.service.get_client_questions(
            db_session, FormType.SERVICES, [catalog.editing.id, catalog.mixing.id]
        )
        assert [q.id for q in form.questions] == [general.id, questions["Mixing"].id]

    @pytest.mark.asyncio
    async def test_wrong_form_type_is_not_found(self, db_session, podcast_form):
        with pytest.raises(NotFoundError):
            await self.service.ensure_question_in_form(
                db_session, podcast_form.name.id, FormType.SERVICES
            )
        await self.service.ensure_question_in_form(db_session, podcast_form.name.id, FormType.PODCAST)


class TestGroupSerialization:

    def setup_method(self):
        self.service = FormQuestionService()

    @staticmethod
    def _session_on(dialect_name):
        session = AsyncMock()
        connection = MagicMock()
        connection.dialect.name = dialect_name
        session.connection = AsyncMock(return_value=connection)
        return session

    @pytest.mark.asyncio
    async def test_postgresql_takes_group_advisory_lock(self):
        session = self._session_on("postgresql")
        service_id = uuid.uuid4()

        await self.service._serialize_group(session, "services", "service_specific", service_id)

        statement = session.execute.call_args[0][0]
        sql = str(statement.compile(dialect=postgresql.dialect()))
        assert "pg_advisory_xact_lock(hashtext(" in sql
        params = statement.compile(dialect=postgresql.dialect()).params
        assert f"form_questions:services:service_specific:{service_id}" in params.values()

    @pytest.mark.asyncio
    async def test_general_groups_share_one_key(self):
        session = self._session_on("postgresql")
        await self.service._serialize_group(session, "podcast", "general", None)
        params = session.execute.call_args[0][0].compile(dialect=postgresql.dialect()).params
        assert "form_questions:podcast:general:-" in params.values()

    @pytest.mark.asyncio
    async def test_sqlite_needs_no_lock(self):
        session = self._session_on("sqlite")
        await self.service._serialize_group(session, "podcast", "general", None)
        session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_duplicate_order_is_a_conflict(self, db_session, catalog, monkeypatch):
        """A stale view of the group makes the insert collide on the order index."""
        data = QuestionCreate(
            section_type=SectionType.SERVICE_SPECIFIC,
            service_id=catalog.editing.id,
            question_text="Raw footage length?",
            question_type=QuestionType.TEXT,
        )
        await self.service.create_question(db_session, FormType.SERVICES, data)
        await db_session.commit()

        async def stale_group(*args, **kwargs):
            return []

        monkeypatch.setattr(FormQuestionService, "_lock_group", stale_group)
        with pytest.raises(ConflictError):
            await self.service.create_question(db_session, FormType.SERVICES, data)
