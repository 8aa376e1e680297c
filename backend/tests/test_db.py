"""
Store-layer tests: drive the real query builders in app.db against a
MagicMock Supabase client. Runs without a live Supabase connection.
"""
from datetime import date
from unittest.mock import MagicMock
import pytest

from app.db import streak_record_from_row, write_streak_if_unchanged
from app.engine.streak import DEFAULT_FREEZE_COUNT, StreakRecord
from app.errors import StorageFailure

USER_ID = "7f1c2a9e-3b4d-4c5e-8f60-1a2b3c4d5e6f"
RECORD = StreakRecord(current_streak=6, longest_streak=9,
                      last_study_date=date(2026, 2, 27), freeze_count=1)


def update_chain(db):
    """The filter builder returned by table().update().eq("id", ...)."""
    return db.table.return_value.update.return_value.eq.return_value


# ── Compare-and-set update ────────────────────────────────────────────────────

class TestStreakUpdate:
    def test_filters_on_expected_last_date(self):
        db = MagicMock()
        guarded = update_chain(db).eq.return_value
        guarded.execute.return_value = MagicMock(data=[{"id": USER_ID}])

        assert write_streak_if_unchanged(db, USER_ID, RECORD, date(2026, 2, 26)) is True

        db.table.assert_called_once_with("profiles")
        columns = db.table.return_value.update.call_args.args[0]
        assert columns["current_streak"] == 6
        assert columns["longest_streak"] == 9
        assert columns["last_study_date"] == "2026-02-27"
        assert columns["streak_freeze_count"] == 1
        assert "updated_at" in columns
        db.table.return_value.update.return_value.eq.assert_called_once_with("id", USER_ID)
        update_chain(db).eq.assert_called_once_with("last_study_date", "2026-02-26")
        update_chain(db).is_.assert_not_called()

    def test_no_rows_updated_means_conflict(self):
        db = MagicMock()
        update_chain(db).eq.return_value.execute.return_value = MagicMock(data=[])
        assert write_streak_if_unchanged(db, USER_ID, RECORD, date(2026, 2, 26)) is False

    def test_empty_last_date_filters_on_null(self):
        db = MagicMock()
        guarded = update_chain(db).is_.return_value
        guarded.execute.return_value = MagicMock(data=[{"id": USER_ID}])

        assert write_streak_if_unchanged(db, USER_ID, RECORD, None) is True
        update_chain(db).is_.assert_called_once_with("last_study_date", "null")
        update_chain(db).eq.assert_not_called()

    def test_null_filter_conflict(self):
        db = MagicMock()
        update_chain(db).is_.return_value.execute.return_value = MagicMock(data=None)
        assert write_streak_if_unchanged(db, USER_ID, RECORD, None) is False

    def test_cleared_last_date_is_written_as_null(self):
        db = MagicMock()
        update_chain(db).eq.return_value.execute.return_value = MagicMock(data=[{"id": USER_ID}])
        write_streak_if_unchanged(db, USER_ID, StreakRecord(), date(2026, 2, 26))
        assert db.table.return_value.update.call_args.args[0]["last_study_date"] is None

    def test_store_error_raises_storage_failure(self):
        db = MagicMock()
        update_chain(db).eq.return_value.execute.side_effect = RuntimeError("connection reset")
        with pytest.raises(StorageFailure):
            write_streak_if_unchanged(db, USER_ID, RECORD, date(2026, 2, 26))


# ── First write inserts the row ───────────────────────────────────────────────

class TestStreakInsert:
    def test_insert_when_no_row(self):
        db = MagicMock()
        assert write_streak_if_unchanged(db, USER_ID, RECORD, None, exists=False) is True

        inserted = db.table.return_value.insert.call_args.args[0]
        assert inserted["id"] == USER_ID
        assert inserted["current_streak"] == 6
        assert inserted["last_study_date"] == "2026-02-27"
        db.table.return_value.update.assert_not_called()

    def test_unique_violation_means_conflict(self):
        db = MagicMock()
        db.table.return_value.insert.return_value.execute.side_effect = Exception(
            'duplicate key value violates unique constraint "profiles_pkey" (23505)'
        )
        assert write_streak_if_unchanged(db, USER_ID, RECORD, None, exists=False) is False

    def test_other_insert_error_raises_storage_failure(self):
        db = MagicMock()
        db.table.return_value.insert.return_value.execute.side_effect = Exception("permission denied")
        with pytest.raises(StorageFailure):
            write_streak_if_unchanged(db, USER_ID, RECORD, None, exists=False)


# ── Reading rows ──────────────────────────────────────────────────────────────

class TestStreakRecordFromRow:
    def test_missing_row_is_default_record(self):
        assert streak_record_from_row(None) == StreakRecord()

    def test_full_row(self):
        row = {"current_streak": 4, "longest_streak": 10,
               "last_study_date": "2026-02-26", "streak_freeze_count": 2}
        assert streak_record_from_row(row) == StreakRecord(4, 10, date(2026, 2, 26), 2)

    def test_null_freeze_count_gets_default(self):
        row = {"current_streak": 4, "longest_streak": 4,
               "last_study_date": "2026-02-26", "streak_freeze_count": None}
        assert streak_record_from_row(row).freeze_count == DEFAULT_FREEZE_COUNT == 1

    def test_zero_freeze_count_is_kept(self):
        row = {"current_streak": 4, "longest_streak": 4,
               "last_study_date": None, "streak_freeze_count": 0}
        assert streak_record_from_row(row).freeze_count == 0

    def test_timestamp_shaped_last_date(self):
        row = {"current_streak": 1, "longest_streak": 1,
               "last_study_date": "2026-02-26T00:00:00+00:00", "streak_freeze_count": 1}
        assert streak_record_from_row(row).last_study_date == date(2026, 2, 26)

    def test_null_counters_read_as_zero(self):
        row = {"current_streak": None, "longest_streak": None,
               "last_study_date": None, "streak_freeze_count": 1}
        record = streak_record_from_row(row)
        assert record.current_streak == 0
        assert record.longest_streak == 0

    @pytest.mark.parametrize("row", [
        {"current_streak": 3, "longest_streak": 3, "last_study_date": "not-a-date"},
        {"current_streak": "lots", "longest_streak": 3, "last_study_date": None},
        {"current_streak": 3, "longest_streak": 3, "last_study_date": 20260226},
    ])
    def test_unreadable_row_raises_storage_failure(self, row):
        with pytest.raises(StorageFailure):
            streak_record_from_row(row)
