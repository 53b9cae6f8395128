"""Test Hevy sync passes with a mocked client."""

from unittest.mock import MagicMock, patch

import pytest

from conftest import workout_payload
from errors import ConfigurationError, HevyRateLimitError
from hevy_sync import (
    EPOCH_CURSOR,
    iter_pages,
    sync_exercise_templates,
    sync_full,
    sync_incremental,
    sync_routines,
)
from models import SyncState


@pytest.fixture
def hevy_store():
    """Patch the store seams hevy_sync talks to."""
    with patch("hevy_sync.get_connection") as mock_conn, \
         patch("hevy_sync.get_sync_state") as mock_state, \
         patch("hevy_sync.update_sync_state") as mock_update, \
         patch("hevy_sync.upsert_workout") as mock_upsert, \
         patch("hevy_sync.mark_workout_deleted") as mock_delete, \
         patch("hevy_sync.time.sleep") as mock_sleep:

        mock_conn.return_value.__enter__ = MagicMock(return_value=MagicMock())
        mock_conn.return_value.__exit__ = MagicMock(return_value=False)
        mock_state.return_value = SyncState()

        yield MagicMock(
            state=mock_state,
            update=mock_update,
            upsert=mock_upsert,
            delete=mock_delete,
            sleep=mock_sleep,
        )


def test_iter_pages_sleeps_between_pages_only():
    pages = {
        1: {"page": 1, "page_count": 3, "workouts": [1]},
        2: {"page": 2, "page_count": 3, "workouts": [2]},
        3: {"page": 3, "page_count": 3, "workouts": [3]},
    }
    with patch("hevy_sync.time.sleep") as mock_sleep:
        seen = list(iter_pages(pages.get, "workouts", delay=0.3))

    assert seen == [(1, [1]), (2, [2]), (3, [3])]
    assert mock_sleep.call_count == 2
    mock_sleep.assert_called_with(0.3)


def test_sync_full_paginates(hevy_store):
    mock_client = MagicMock()
    mock_client.get_workouts.side_effect = [
        {"page": 1, "page_count": 2, "workouts": [workout_payload("w1"), workout_payload("w2")]},
        {"page": 2, "page_count": 2, "workouts": [workout_payload("w3")]},
    ]

    count = sync_full(mock_client)

    assert count == 3
    assert hevy_store.upsert.call_count == 3
    mock_client.get_workouts.assert_any_call(page=2, page_size=10)
    final = hevy_store.update.call_args[1]
    assert final["last_event_timestamp"] == final["last_synced_at"]
    assert final["sync_in_progress"] is False
    assert final["last_error"] is None


def test_sync_full_page_failure_aborts_and_records_error(hevy_store):
    mock_client = MagicMock()
    mock_client.get_workouts.side_effect = [
        {"page": 1, "page_count": 2, "workouts": [workout_payload("w1")]},
        HevyRateLimitError(),
    ]

    with pytest.raises(HevyRateLimitError):
        sync_full(mock_client)

    # page 1 stays committed
    assert hevy_store.upsert.call_count == 1
    final = hevy_store.update.call_args[1]
    assert final["sync_in_progress"] is False
    assert "Rate limited" in final["last_error"]


def test_sync_full_requires_api_key():
    with patch("config.HEVY_API_KEY", ""):
        with pytest.raises(ConfigurationError):
            sync_full()


def test_incremental_starts_from_epoch_without_cursor(hevy_store):
    mock_client = MagicMock()
    mock_client.fetch_events.return_value = {"page": 1, "page_count": 1, "events": []}

    sync_incremental(mock_client)

    assert mock_client.fetch_events.call_args[0][0] == EPOCH_CURSOR


def test_incremental_applies_events(hevy_store):
    hevy_store.state.return_value = SyncState(last_event_timestamp="2024-01-01T00:00:00Z")
    mock_client = MagicMock()
    mock_client.fetch_events.return_value = {
        "page": 1,
        "page_count": 1,
        "events": [
            {"type": "updated", "workout": workout_payload("w1")},
            {"type": "deleted", "id": "w2", "deleted_at": "2024-01-02T00:00:00Z"},
            {"type": "archived", "id": "w3"},
        ],
    }

    result = sync_incremental(mock_client)

    assert result == {"events": 3, "updated": 1, "deleted": 1}
    assert hevy_store.upsert.call_args[0][1].id == "w1"
    assert hevy_store.delete.call_args[0][1] == "w2"
    mock_client.fetch_events.assert_called_once_with("2024-01-01T00:00:00Z", page=1, page_size=10)


def test_incremental_cursor_is_pass_start(hevy_store):
    mock_client = MagicMock()
    mock_client.fetch_events.return_value = {"page": 1, "page_count": 1, "events": []}

    with patch("hevy_sync.utc_now", side_effect=["2024-03-01T10:00:00Z", "2024-03-01T10:05:00Z"]):
        sync_incremental(mock_client)

    final = hevy_store.update.call_args[1]
    assert final["last_event_timestamp"] == "2024-03-01T10:00:00Z"
    assert final["last_synced_at"] == "2024-03-01T10:05:00Z"


def test_incremental_failure_keeps_cursor(hevy_store):
    hevy_store.state.return_value = SyncState(last_event_timestamp="2024-01-01T00:00:00Z")
    mock_client = MagicMock()
    mock_client.fetch_events.side_effect = HevyRateLimitError()

    with pytest.raises(HevyRateLimitError):
        sync_incremental(mock_client)

    for c in hevy_store.update.call_args_list:
        assert "last_event_timestamp" not in c[1]


def test_sync_exercise_templates_paginates():
    mock_client = MagicMock()
    mock_client.get_exercise_templates.side_effect = [
        {"page": 1, "page_count": 2, "exercise_templates": [{"id": "t1", "title": "Bench Press"}]},
        {"page": 2, "page_count": 2, "exercise_templates": [{"id": "t2", "title": "Squat"}]},
    ]

    with patch("hevy_sync.get_connection") as mock_conn, \
         patch("hevy_sync.upsert_exercise_template") as mock_upsert, \
         patch("hevy_sync.time.sleep"):

        mock_conn.return_value.__enter__ = MagicMock(return_value=MagicMock())
        mock_conn.return_value.__exit__ = MagicMock(return_value=False)

        assert sync_exercise_templates(mock_client) == 2
        assert mock_upsert.call_args[0][1].title == "Squat"


def test_sync_routines_fetches_folders_first():
    mock_client = MagicMock()
    order = []
    mock_client.get_routine_folders.side_effect = lambda **kw: order.append("folders") or {
        "page": 1, "page_count": 1, "routine_folders": [{"id": 1, "title": "Week 1"}],
    }
    mock_client.get_routines.side_effect = lambda **kw: order.append("routines") or {
        "page": 1, "page_count": 1, "routines": [{"id": "r1", "title": "Day 1", "folder_id": 1}],
    }

    with patch("hevy_sync.get_connection") as mock_conn, \
         patch("hevy_sync.upsert_routine_folder") as mock_folder, \
         patch("hevy_sync.upsert_routine") as mock_routine, \
         patch("hevy_sync.time.sleep"):

        mock_conn.return_value.__enter__ = MagicMock(return_value=MagicMock())
        mock_conn.return_value.__exit__ = MagicMock(return_value=False)

        result = sync_routines(mock_client)

    assert result == {"folders": 1, "routines": 1}
    assert order == ["folders", "routines"]
    assert mock_folder.call_args[0][1].id == 1
    assert mock_routine.call_args[0][1].folder_id == 1


def test_incremental_counts_restored_workout_as_updated(store):
    mock_client = MagicMock()
    mock_client.fetch_events.return_value = {
        "page": 1,
        "page_count": 1,
        "events": [
            {"type": "updated", "workout": workout_payload("w1")},
            {"type": "deleted", "id": "w1", "deleted_at": "2024-01-02T00:00:00Z"},
            {"type": "updated", "workout": workout_payload("w1", title="Push Day (redo)")},
        ],
    }

    with patch("hevy_sync.get_connection") as mock_conn, \
         patch("hevy_sync.get_sync_state", return_value=SyncState()), \
         patch("hevy_sync.update_sync_state"), \
         patch("hevy_sync.time.sleep"):
        mock_conn.return_value.__enter__ = MagicMock(return_value=MagicMock())
        mock_conn.return_value.__exit__ = MagicMock(return_value=False)
        result = sync_incremental(mock_client)

    assert result == {"events": 3, "updated": 2, "deleted": 1}
    (row,) = store.workouts.values()
    assert row["is_deleted"] is False
    assert row["title"] == "Push Day (redo)"
