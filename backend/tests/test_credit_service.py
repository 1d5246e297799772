"""
Pilsa Backend — Credit Ledger Service Unit Tests
=================================================

What we test:
    ✅ Date/month parsing and month bounds (year rollover)
    ✅ Transcription: atomic upserts, returned daily total, KV mirror on/off
    ✅ Day stats zero-fill, month stats mapping
    ✅ Completed verses: union of progress rows and KV records
"""

from datetime import date
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from pydantic import ValidationError as SchemaValidationError

from pilsa.exceptions import ValidationError
from pilsa.schemas.transcription import TranscriptionCreate
from pilsa.services.credit_service import (
    CreditService,
    month_bounds,
    new_record_id,
    parse_day,
)
from pilsa.models.user import utcnow


class TestDateHelpers:
    def test_parse_day(self):
        assert parse_day("2025-03-09") == date(2025, 3, 9)

    @pytest.mark.parametrize(
        "value",
        ["2025-3-9", "2025-02-30", "yesterday", "", "20250309", "2025-W10-7", "2025-03-09T00:00"],
    )
    def test_parse_day_rejects_malformed(self, value):
        with pytest.raises(ValidationError):
            parse_day(value)

    def test_month_bounds(self):
        assert month_bounds("2025-02") == (date(2025, 2, 1), date(2025, 3, 1))
        assert month_bounds("2024-12") == (date(2024, 12, 1), date(2025, 1, 1))

    @pytest.mark.parametrize("value", ["2025-13", "2025-00", "202501", "2025-1", "abcd-ef"])
    def test_month_bounds_rejects_malformed(self, value):
        with pytest.raises(ValidationError):
            month_bounds(value)

    @pytest.mark.parametrize("value", [1741478400, "20250309", "2025-W10-7", "2025-3-9"])
    def test_transcription_date_must_be_calendar_day(self, value):
        with pytest.raises(SchemaValidationError):
            TranscriptionCreate(mode="easy", credits=1, book="창세기", chapter=1, verseNum=1, date=value)

    def test_transcription_date_accepts_day_or_none(self):
        fields = dict(mode="easy", credits=1, book="창세기", chapter=1, verseNum=1)
        assert TranscriptionCreate(**fields, date="2025-03-09").date == date(2025, 3, 9)
        assert TranscriptionCreate(**fields).date is None

    def test_record_id_format(self):
        ms, suffix = new_record_id(utcnow()).split("-")
        assert ms.isdigit()
        assert len(suffix) == 9


class TestRecordTranscription:
    def setup_method(self):
        self.service = CreditService()
        self.payload = TranscriptionCreate(
            mode="expert",
            verse="태초에 하나님이 천지를 창조하시니라",
            credits=3,
            book="창세기",
            chapter=1,
            verseNum=1,
            date="2025-03-09",
        )

    @pytest.mark.asyncio
    async def test_accrues_credits_and_mirrors_record(self, mock_db_session, make_result, make_user, auth_user):
        user = make_user()
        mock_db_session.execute.side_effect = [make_result(scalar=8), make_result()]

        with patch("pilsa.services.credit_service.user_service.resolve_user", AsyncMock(return_value=user)), \
             patch("pilsa.services.credit_service.kv_store.set", AsyncMock()) as kv_set:
            response = await self.service.record_transcription(mock_db_session, auth_user, self.payload)

        assert response.daily_earned == 8
        assert response.transcription.credits == 3
        assert response.transcription.date == date(2025, 3, 9)

        credit_sql = str(mock_db_session.execute.await_args_list[0].args[0])
        progress_sql = str(mock_db_session.execute.await_args_list[1].args[0])
        assert "ON CONFLICT" in credit_sql
        assert "credits_earned + excluded.credits_earned" in credit_sql
        assert "ON CONFLICT (user_id, book)" in progress_sql

        key, record = kv_set.await_args.args[1:]
        assert key == f"user:{auth_user.id}:transcription:{response.transcription.id}"
        assert record["verseNum"] == 1
        assert record["date"] == "2025-03-09"
        assert record["userId"] == auth_user.id

    @pytest.mark.asyncio
    async def test_mirror_disabled(self, mock_db_session, make_result, make_user, auth_user):
        mock_db_session.execute.side_effect = [make_result(scalar=3), make_result()]

        with patch("pilsa.services.credit_service.user_service.resolve_user", AsyncMock(return_value=make_user())), \
             patch("pilsa.services.credit_service.kv_store.set", AsyncMock()) as kv_set, \
             patch("pilsa.services.credit_service.settings.legacy_kv_mirror", False):
            response = await self.service.record_transcription(mock_db_session, auth_user, self.payload)

        assert response.daily_earned == 3
        kv_set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_defaults_to_today(self, mock_db_session, make_result, make_user, auth_user):
        payload = self.payload.model_copy(update={"date": None})
        mock_db_session.execute.side_effect = [make_result(scalar=3), make_result()]

        with patch("pilsa.services.credit_service.user_service.resolve_user", AsyncMock(return_value=make_user())), \
             patch("pilsa.services.credit_service.kv_store.set", AsyncMock()), \
             patch("pilsa.services.credit_service.today_utc", return_value=date(2025, 1, 2)):
            response = await self.service.record_transcription(mock_db_session, auth_user, payload)

        assert response.transcription.date == date(2025, 1, 2)


class TestStats:
    def setup_method(self):
        self.service = CreditService()

    @pytest.mark.asyncio
    async def test_day_without_row_is_zeroed(self, mock_db_session, make_result, make_user, auth_user):
        mock_db_session.execute.return_value = make_result(scalar=None)

        with patch("pilsa.services.credit_service.user_service.resolve_user", AsyncMock(return_value=make_user())):
            stats = await self.service.get_day_stats(mock_db_session, auth_user, date(2025, 3, 9))

        assert stats.date == date(2025, 3, 9)
        assert (stats.credits_earned, stats.credits_spent) == (0, 0)

    @pytest.mark.asyncio
    async def test_month_rows(self, mock_db_session, make_result, make_user, auth_user):
        rows = [
            SimpleNamespace(date=date(2025, 3, 1), credits_earned=5, credits_spent=0),
            SimpleNamespace(date=date(2025, 3, 9), credits_earned=12, credits_spent=2),
        ]
        mock_db_session.execute.return_value = make_result(scalars=rows)

        with patch("pilsa.services.credit_service.user_service.resolve_user", AsyncMock(return_value=make_user())):
            stats = await self.service.get_month_stats(mock_db_session, auth_user, "2025-03")

        assert [s.credits_earned for s in stats] == [5, 12]
        query = str(mock_db_session.execute.await_args.args[0])
        assert "ORDER BY" in query

    @pytest.mark.asyncio
    async def test_malformed_month_is_rejected_before_querying(self, mock_db_session, auth_user):
        with pytest.raises(ValidationError):
            await self.service.get_month_stats(mock_db_session, auth_user, "March")
        mock_db_session.execute.assert_not_awaited()


class TestCompletedVerses:
    def setup_method(self):
        self.service = CreditService()

    @pytest.mark.asyncio
    async def test_union_of_progress_and_kv(self, mock_db_session, make_result, make_user, auth_user):
        progress_rows = [SimpleNamespace(book="창세기", chapter=1, verse=3)]
        mock_db_session.execute.return_value = make_result(rows=progress_rows)
        kv_records = [
            {"book": "창세기", "chapter": 1, "verseNum": 1},
            {"book": "창세기", "chapter": 1, "verseNum": 3},
            {"book": "출애굽기"},
            "garbage",
        ]

        with patch("pilsa.services.credit_service.user_service.find_user", AsyncMock(return_value=make_user())), \
             patch("pilsa.services.credit_service.kv_store.get_by_prefix", AsyncMock(return_value=kv_records)) as scan:
            verses = await self.service.get_completed_verses(mock_db_session, auth_user)

        assert verses == {"창세기-1-1": True, "창세기-1-3": True}
        assert scan.await_args.args[1] == f"user:{auth_user.id}:transcription:"

    @pytest.mark.asyncio
    async def test_unknown_user_gets_empty_map(self, mock_db_session, auth_user):
        with patch("pilsa.services.credit_service.user_service.find_user", AsyncMock(return_value=None)):
            assert await self.service.get_completed_verses(mock_db_session, auth_user) == {}
        mock_db_session.execute.assert_not_awaited()
