"""
Mindak Reservations Backend — Reservation Service Tests
=======================================================

What:  Submission, status workflow, notes, listing and deletion.
How:   Mostly against a real SQLite database (aiosqlite) so snapshots,
       history rows and the status compare-and-swap are exercised for real;
       a few unit tests use the mocked session.

What we test:
    ✅ Podcast and service submissions produce pending reservations with
       one snapshot per active question
    ✅ Unknown and deactivated question ids are rejected
    ✅ Later edits to questions/options never change stored snapshots
    ✅ History sequence grows by one per transition; latest entry = status
    ✅ Disallowed transitions write nothing
    ✅ Two racing transitions: one wins, the other gets ConflictError
"""

import re
import uuid
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select, update

from mindak.exceptions import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from mindak.models.analytics import AnalyticsEvent
from mindak.models.form import FormType, QuestionType, SectionType
from mindak.models.reservation import (
    Reservation,
    ReservationNote,
    ReservationStatus,
    ReservationStatusHistory,
    ReservationType,
)
from mindak.schemas.form import AnswerOptionUpdate, QuestionCreate, QuestionUpdate
from mindak.schemas.reservation import ReservationListParams
from mindak.services.form_service import form_service
from mindak.services.reservation_service import ReservationService

ADMIN = uuid.UUID("11111111-1111-1111-1111-111111111111")
OTHER_ADMIN = uuid.UUID("22222222-2222-2222-2222-222222222222")


async def count_rows(db, model):
    return (await db.execute(select(func.count()).select_from(model))).scalar()


class TestPodcastSubmission:

    def setup_method(self):
        self.service = ReservationService()

    @pytest.mark.asyncio
    async def test_example_submission(self, db_session, podcast_form, valid_podcast_answers):
        """Required name + email (+ format) yields a pending reservation with full snapshot."""
        result = await self.service.submit_podcast_reservation(
            db_session, valid_podcast_answers, client_ip="10.0.0.1", user_agent="pytest"
        )
        await db_session.commit()

        assert result.status == ReservationStatus.PENDING
        assert result.reservation_type == ReservationType.PODCAST
        assert re.match(r"^POD-\d{4}-\d{6}$", result.confirmation_id)
        assert len(result.answers) == 5
        assert [a.question_id for a in result.answers] == [
            podcast_form.name.id,
            podcast_form.email.id,
            podcast_form.format.id,
            podcast_form.topics.id,
            podcast_form.date.id,
        ]
        assert result.answers[0].value == "Jane Doe"
        assert result.answers[1].value == "jane@example.com"
        assert result.answers[2].value == "video"

    @pytest.mark.asyncio
    async def test_submission_writes_initial_history(self, db_session, valid_podcast_answers):
        result = await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        await db_session.commit()

        details = await self.service.get_reservation_details(db_session, result.id)
        assert len(details.history) == 1
        assert details.history[0].sequence == 1
        assert details.history[0].previous_status is None
        assert details.history[0].new_status == ReservationStatus.PENDING
        assert details.status == ReservationStatus.PENDING

    @pytest.mark.asyncio
    async def test_confirmation_ids_are_unique(self, db_session, valid_podcast_answers):
        first = await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        second = await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        await db_session.commit()
        assert first.confirmation_id != second.confirmation_id

    @pytest.mark.asyncio
    async def test_submission_marks_definitions_referenced(
        self, db_session, podcast_form, valid_podcast_answers
    ):
        await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        await db_session.commit()

        questions = await form_service.list_questions(db_session, FormType.PODCAST)
        # Referenced questions are superseded on text change
        updated = await form_service.update_question(
            db_session, questions[0].id, QuestionUpdate(question_text="Your name")
        )
        assert updated.id != questions[0].id
        assert updated.supersedes_id == questions[0].id

    @pytest.mark.asyncio
    async def test_unknown_question_rejected(self, db_session, valid_podcast_answers):
        answers = dict(valid_podcast_answers)
        answers[str(uuid.uuid4())] = "surprise"

        with pytest.raises(ValidationError) as exc_info:
            await self.service.submit_podcast_reservation(db_session, answers)
        assert exc_info.value.code == "unknown_question"
        assert await count_rows(db_session, Reservation) == 0

    @pytest.mark.asyncio
    async def test_deactivated_question_rejected(
        self, db_session, podcast_form, valid_podcast_answers
    ):
        await form_service.deactivate_question(db_session, podcast_form.topics.id)
        await db_session.commit()

        answers = dict(valid_podcast_answers)
        answers[str(podcast_form.topics.id)] = ["tech"]
        with pytest.raises(ValidationError) as exc_info:
            await self.service.submit_podcast_reservation(db_session, answers)
        assert exc_info.value.code == "unknown_question"
        assert exc_info.value.question_id == str(podcast_form.topics.id)

    @pytest.mark.asyncio
    async def test_snapshot_length_follows_active_set(
        self, db_session, podcast_form, valid_podcast_answers
    ):
        await form_service.deactivate_question(db_session, podcast_form.date.id)
        result = await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        assert len(result.answers) == 4
        assert podcast_form.date.id not in {a.question_id for a in result.answers}

    @pytest.mark.asyncio
    async def test_snapshots_survive_definition_edits(
        self, db_session, session_factory, podcast_form, valid_podcast_answers
    ):
        result = await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        await db_session.commit()

        video = next(a for a in podcast_form.format.answers if a.answer_value == "video")
        await form_service.update_question(
            db_session, podcast_form.name.id, QuestionUpdate(question_text="Name (as on your ID)")
        )
        await form_service.update_answer(
            db_session, video.id, AnswerOptionUpdate(answer_text="Video + audio")
        )
        await form_service.delete_question(db_session, podcast_form.email.id)
        await db_session.commit()

        async with session_factory() as fresh:
            details = await self.service.get_reservation_details(fresh, result.id)
        assert details.answers[0].question_text == "What is your full name?"
        assert details.answers[1].question_text == "What is your email address?"
        assert details.answers[2].answer_text == "Video"
        assert details.answers[2].value == "video"


class TestServiceSubmission:

    def setup_method(self):
        self.service = ReservationService()

    @pytest.mark.asyncio
    async def test_requires_a_service(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.submit_service_reservation(db_session, [], {})
        assert exc_info.value.code == "missing_services"

    @pytest.mark.asyncio
    async def test_unknown_service(self, db_session, catalog):
        with pytest.raises(NotFoundError):
            await self.service.submit_service_reservation(db_session, [uuid.uuid4()], {})

    @pytest.mark.asyncio
    async def test_inactive_service(self, db_session, catalog):
        catalog.mixing.is_active = False
        await db_session.commit()
        with pytest.raises(NotFoundError):
            await self.service.submit_service_reservation(db_session, [catalog.mixing.id], {})

    @pytest.mark.asyncio
    async def test_service_specific_snapshot(self, db_session, catalog):
        brief = await form_service.create_question(
            db_session,
            FormType.SERVICES,
            QuestionCreate(
                section_type=SectionType.SERVICE_SPECIFIC,
                service_id=catalog.editing.id,
                question_text="Describe the footage",
                question_type=QuestionType.TEXTAREA,
                required=True,
            ),
        )
        contact = await form_service.create_question(
            db_session,
            FormType.SERVICES,
            QuestionCreate(question_text="Contact email", question_type=QuestionType.EMAIL, required=True),
        )
        await db_session.commit()

        result = await self.service.submit_service_reservation(
            db_session,
            [catalog.editing.id, catalog.editing.id],
            {str(contact.id): "studio@example.com", str(brief.id): "Two hours of interviews"},
        )
        await db_session.commit()

        assert re.match(r"^SRV-\d{4}-\d{6}$", result.confirmation_id)
        assert [a.question_id for a in result.answers] == [contact.id, brief.id]
        assert result.answers[1].service_name == "Editing"
        assert result.answers[1].service_id == catalog.editing.id

        stored = (
            await db_session.execute(select(Reservation).where(Reservation.id == result.id))
        ).scalar_one()
        assert stored.service_ids == [str(catalog.editing.id)]

        confirmation = await self.service.get_confirmation(db_session, result.confirmation_id.lower())
        assert confirmation.service_names == ["Editing"]


class TestStatusTransitions:

    def setup_method(self):
        self.service = ReservationService()

    @pytest.mark.asyncio
    async def test_history_grows_with_each_transition(self, db_session, valid_podcast_answers):
        submitted = await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        await db_session.commit()

        confirmed = await self.service.transition(
            db_session, submitted.id, ReservationStatus.CONFIRMED, actor_id=ADMIN, reason=" booked "
        )
        await db_session.commit()
        completed = await self.service.transition(
            db_session, submitted.id, ReservationStatus.COMPLETED, actor_id=OTHER_ADMIN
        )
        await db_session.commit()

        assert confirmed.history.sequence == 2
        assert confirmed.history.reason == "booked"
        assert completed.history.sequence == 3
        assert completed.history.previous_status == ReservationStatus.CONFIRMED

        details = await self.service.get_reservation_details(db_session, submitted.id)
        assert [h.sequence for h in details.history] == [1, 2, 3]
        assert [h.changed_by for h in details.history[1:]] == [ADMIN, OTHER_ADMIN]
        assert details.history[-1].new_status == details.status == ReservationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_pending_to_completed_writes_nothing(self, db_session, valid_podcast_answers):
        submitted = await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        await db_session.commit()

        with pytest.raises(InvalidTransitionError) as exc_info:
            await self.service.transition(
                db_session, submitted.id, ReservationStatus.COMPLETED, actor_id=ADMIN
            )
        assert exc_info.value.from_status == "pending"
        assert exc_info.value.to_status == "completed"
        await db_session.rollback()

        details = await self.service.get_reservation_details(db_session, submitted.id)
        assert details.status == ReservationStatus.PENDING
        assert len(details.history) == 1

    @pytest.mark.asyncio
    async def test_transition_records_analytics_event(self, db_session, valid_podcast_answers):
        submitted = await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        await self.service.transition(db_session, submitted.id, ReservationStatus.CANCELLED, actor_id=ADMIN)
        await db_session.commit()

        types = (await db_session.execute(select(AnalyticsEvent.event_type))).scalars().all()
        assert "reservation_submitted" in types
        assert "reservation_cancelled" in types

    @pytest.mark.asyncio
    async def test_wrong_reservation_type_is_not_found(self, db_session, valid_podcast_answers):
        submitted = await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        await db_session.commit()
        with pytest.raises(NotFoundError):
            await self.service.transition(
                db_session,
                submitted.id,
                ReservationStatus.CONFIRMED,
                actor_id=ADMIN,
                reservation_type=ReservationType.SERVICE,
            )

    @pytest.mark.asyncio
    async def test_racing_transitions_one_wins(
        self, db_session, session_factory, valid_podcast_answers, monkeypatch
    ):
        """
        The loser loads the reservation as pending; before it writes, another
        session cancels and commits. The loser's compare-and-swap matches no row.
        """
        submitted = await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        await db_session.commit()

        original_load = ReservationService._load_reservation
        raced = []

        async def load_then_race(service, db, reservation_id, reservation_type=None):
            reservation = await original_load(service, db, reservation_id, reservation_type)
            if not raced:
                raced.append(True)
                async with session_factory() as winner:
                    await service.transition(
                        winner, reservation_id, ReservationStatus.CANCELLED, actor_id=OTHER_ADMIN
                    )
                    await winner.commit()
            return reservation

        monkeypatch.setattr(ReservationService, "_load_reservation", load_then_race)

        async with session_factory() as loser:
            with pytest.raises(ConflictError):
                await self.service.transition(
                    loser, submitted.id, ReservationStatus.CONFIRMED, actor_id=ADMIN
                )
            await loser.rollback()

        monkeypatch.undo()
        async with session_factory() as fresh:
            details = await self.service.get_reservation_details(fresh, submitted.id)
        assert details.status == ReservationStatus.CANCELLED
        assert [h.new_status for h in details.history] == [
            ReservationStatus.PENDING,
            ReservationStatus.CANCELLED,
        ]
        assert details.history[-1].changed_by == OTHER_ADMIN

    @pytest.mark.asyncio
    async def test_lost_compare_and_swap_raises_conflict(self, mock_db_session):
        reservation = MagicMock()
        reservation.id = uuid.uuid4()
        reservation.status = "pending"
        reservation.reservation_type = "podcast"

        load_result = MagicMock()
        load_result.scalar_one_or_none.return_value = reservation
        update_result = MagicMock()
        update_result.rowcount = 0
        mock_db_session.execute.side_effect = [load_result, update_result]

        with pytest.raises(ConflictError):
            await self.service.transition(
                mock_db_session, reservation.id, ReservationStatus.CONFIRMED, actor_id=ADMIN
            )
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_transition_skips_update(self, mock_db_session):
        reservation = MagicMock()
        reservation.id = uuid.uuid4()
        reservation.status = "cancelled"
        reservation.reservation_type = "podcast"
        load_result = MagicMock()
        load_result.scalar_one_or_none.return_value = reservation
        mock_db_session.execute.return_value = load_result

        with pytest.raises(InvalidTransitionError):
            await self.service.transition(
                mock_db_session, reservation.id, ReservationStatus.CONFIRMED, actor_id=ADMIN
            )
        assert mock_db_session.execute.await_count == 1


class TestNotes:

    def setup_method(self):
        self.service = ReservationService()

    @pytest.mark.asyncio
    async def test_empty_note_rejected(self, db_session, valid_podcast_answers):
        submitted = await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        with pytest.raises(ValidationError) as exc_info:
            await self.service.add_note(db_session, submitted.id, ADMIN, "   ")
        assert exc_info.value.code == "empty_note"

    @pytest.mark.asyncio
    async def test_notes_are_listed_oldest_first(self, db_session, valid_podcast_answers):
        submitted = await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        await self.service.add_note(db_session, submitted.id, ADMIN, "Called the guest")
        await self.service.add_note(db_session, submitted.id, OTHER_ADMIN, "  Studio B booked ")
        await db_session.commit()

        notes = await self.service.list_notes(db_session, submitted.id)
        assert [n.text for n in notes] == ["Called the guest", "Studio B booked"]
        assert [n.author_id for n in notes] == [ADMIN, OTHER_ADMIN]

    @pytest.mark.asyncio
    async def test_note_on_unknown_reservation(self, db_session):
        with pytest.raises(NotFoundError):
            await self.service.add_note(db_session, uuid.uuid4(), ADMIN, "hello")


class TestAdminReads:

    def setup_method(self):
        self.service = ReservationService()

    @pytest.mark.asyncio
    async def test_cursor_pagination(self, db_session, session_factory, valid_podcast_answers):
        for _ in range(3):
            await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
            await db_session.commit()

        async with session_factory() as fresh:
            first = await self.service.list_reservations(
                fresh, ReservationType.PODCAST, ReservationListParams(limit=2)
            )
            assert first.total_count == 3
            assert len(first.reservations) == 2
            assert first.has_more is True
            assert first.next_cursor is not None
            assert first.reservations[0].created_at >= first.reservations[1].created_at
            assert first.reservations[0].answer_count == 5

            second = await self.service.list_reservations(
                fresh,
                ReservationType.PODCAST,
                ReservationListParams(limit=2, cursor=first.next_cursor),
            )
        assert len(second.reservations) == 1
        assert second.has_more is False
        seen = {r.id for r in first.reservations} | {r.id for r in second.reservations}
        assert len(seen) == 3

    @pytest.mark.asyncio
    async def test_cursor_pagination_with_equal_timestamps(
        self, db_session, session_factory, valid_podcast_answers
    ):
        for _ in range(3):
            await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        await db_session.execute(
            update(Reservation).values(created_at=datetime(2026, 1, 31, 15, 0, tzinfo=timezone.utc))
        )
        await db_session.commit()

        for sort in ("created_at_desc", "created_at_asc"):
            seen = []
            cursor = None
            async with session_factory() as fresh:
                while True:
                    page = await self.service.list_reservations(
                        fresh,
                        ReservationType.PODCAST,
                        ReservationListParams(limit=1, cursor=cursor, sort=sort),
                    )
                    seen.extend(r.id for r in page.reservations)
                    if not page.has_more:
                        break
                    cursor = page.next_cursor
            assert len(seen) == 3
            assert len(set(seen)) == 3

    @pytest.mark.asyncio
    async def test_date_only_range_includes_whole_day(self, db_session, valid_podcast_answers):
        submitted = await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        await db_session.execute(
            update(Reservation)
            .where(Reservation.id == submitted.id)
            .values(created_at=datetime(2026, 1, 31, 15, 0, tzinfo=timezone.utc))
        )
        await db_session.commit()

        async def count(**filters):
            result = await self.service.list_reservations(
                db_session, ReservationType.PODCAST, ReservationListParams(**filters)
            )
            return result.total_count

        assert await count(from_date="2026-01-31", to_date="2026-01-31") == 1
        assert await count(to_date="2026-01-30") == 0
        assert await count(from_date="2026-02-01") == 0
        # An explicit time is an inclusive upper bound as given
        assert await count(to_date="2026-01-31T14:59:59+00:00") == 0
        assert await count(to_date="2026-01-31T15:00:00+00:00") == 1

    @pytest.mark.asyncio
    async def test_search_matches_wildcards_literally(self, db_session, valid_podcast_answers):
        submitted = await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        await db_session.commit()

        async def count(search):
            result = await self.service.list_reservations(
                db_session, ReservationType.PODCAST, ReservationListParams(search=search)
            )
            return result.total_count

        assert await count(submitted.confirmation_id[-6:].lower()) == 1
        assert await count(submitted.confirmation_id.lower()) == 1
        assert await count("%") == 0
        assert await count("POD_") == 0

    @pytest.mark.asyncio
    async def test_list_filters_by_status_and_type(self, db_session, valid_podcast_answers):
        kept = await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        await self.service.transition(db_session, kept.id, ReservationStatus.CONFIRMED, actor_id=ADMIN)
        await db_session.commit()

        confirmed = await self.service.list_reservations(
            db_session,
            ReservationType.PODCAST,
            ReservationListParams(status=ReservationStatus.CONFIRMED),
        )
        assert [r.id for r in confirmed.reservations] == [kept.id]

        services = await self.service.list_reservations(
            db_session, ReservationType.SERVICE, ReservationListParams()
        )
        assert services.total_count == 0

    @pytest.mark.asyncio
    async def test_bad_cursor(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.list_reservations(
                db_session, ReservationType.PODCAST, ReservationListParams(cursor="yesterday")
            )
        assert exc_info.value.code == "invalid_format"

    @pytest.mark.asyncio
    async def test_unknown_confirmation(self, db_session):
        with pytest.raises(NotFoundError):
            await self.service.get_confirmation(db_session, "POD-2024-000000")

    @pytest.mark.asyncio
    async def test_delete_removes_history_and_notes(self, db_session, valid_podcast_answers):
        submitted = await self.service.submit_podcast_reservation(db_session, valid_podcast_answers)
        await self.service.add_note(db_session, submitted.id, ADMIN, "spam")
        await db_session.commit()

        await self.service.delete_reservation(db_session, submitted.id, ReservationType.PODCAST)
        await db_session.commit()

        assert await count_rows(db_session, Reservation) == 0
        assert await count_rows(db_session, ReservationStatusHistory) == 0
        assert await count_rows(db_session, ReservationNote) == 0
        with pytest.raises(NotFoundError):
            await self.service.get_reservation_details(db_session, submitted.id)
