"""Tests for ProgressBroadcaster topic fan-out and throttling."""
from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from user_manager.models import ImportStatus, UserImport
from user_manager.services.import_broadcast import ProgressBroadcaster, import_topic, should_forward_progress


def make_record(progress: int = 0, total_rows: int = 0, status: ImportStatus = ImportStatus.PROCESSING) -> UserImport:
    return UserImport(
        id=uuid4(),
        status=status,
        progress=progress,
        total_rows=total_rows,
        file_name="users.csv",
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


class TestShouldForwardProgress:
    """Test suite for the aggregate throttle."""

    @pytest.mark.parametrize("percentage", [0, 10, 50, 90, 100])
    def test_multiples_of_ten_are_forwarded(self, percentage) -> None:
        assert should_forward_progress(percentage)

    @pytest.mark.parametrize("percentage", [1, 33, 67, 99])
    def test_other_percentages_are_not(self, percentage) -> None:
        assert not should_forward_progress(percentage)


class TestProgressBroadcaster:
    """Test suite for ProgressBroadcaster."""

    def test_import_topic_name(self) -> None:
        import_id = uuid4()

        assert import_topic(import_id) == f"import_{import_id}"

    def test_started_goes_to_both_topics(self, publisher) -> None:
        record = make_record(total_rows=4)

        ProgressBroadcaster(publisher).started(record)

        own = publisher.on(import_topic(record.id))
        aggregate = publisher.on("admin_imports")
        assert [m["type"] for m in own] == ["started"]
        assert [m["type"] for m in aggregate] == ["started"]
        assert own[0]["data"]["total_rows"] == 4
        assert "topic" not in own[0]["data"]
        assert aggregate[0]["data"]["topic"] == import_topic(record.id)

    def test_progress_is_throttled_on_aggregate_topic(self, publisher) -> None:
        broadcaster = ProgressBroadcaster(publisher)
        # 3 of 9 rows is 33%, 9 of 9 rows is 100%.
        broadcaster.progress(make_record(progress=3, total_rows=9), successful=3, failed=0, recent_errors=[])
        record = make_record(progress=9, total_rows=9)
        broadcaster.progress(record, successful=8, failed=1, recent_errors=["Row 5: Email is required"])

        aggregate = publisher.on("admin_imports")
        assert len(aggregate) == 1
        assert aggregate[0]["type"] == "progress_update"
        assert aggregate[0]["data"]["percentage"] == 100
        assert aggregate[0]["data"]["failed_imports"] == 1
        assert aggregate[0]["data"]["recent_errors"] == ["Row 5: Email is required"]
        assert len(publisher.on(import_topic(record.id))) == 1

    def test_per_import_topic_receives_every_progress_event(self, publisher) -> None:
        broadcaster = ProgressBroadcaster(publisher)
        record = make_record(progress=1, total_rows=3)

        broadcaster.progress(record, successful=1, failed=0, recent_errors=[])
        record.progress = 2
        broadcaster.progress(record, successful=2, failed=0, recent_errors=[])

        own = publisher.on(import_topic(record.id))
        assert [m["data"]["percentage"] for m in own] == [33, 67]
        assert publisher.on("admin_imports") == []

    def test_terminal_events_always_reach_aggregate(self, publisher) -> None:
        broadcaster = ProgressBroadcaster(publisher, aggregate_topic="ops_imports")
        done = make_record(progress=7, total_rows=7, status=ImportStatus.COMPLETED)
        failed = make_record(status=ImportStatus.FAILED)
        failed.error_message = "Unsupported file type: .txt"

        broadcaster.completed(done, successful=7, failed=0, recent_errors=[])
        broadcaster.failed(failed)

        aggregate = publisher.on("ops_imports")
        assert [m["type"] for m in aggregate] == ["completed", "failed"]
        assert aggregate[0]["data"]["successful_imports"] == 7
        assert aggregate[1]["data"]["error_message"] == "Unsupported file type: .txt"
        assert aggregate[1]["data"]["status"] == "failed"

    def test_created_only_announced_on_aggregate(self, publisher) -> None:
        record = make_record(status=ImportStatus.PENDING)

        ProgressBroadcaster(publisher).created(record, pending_imports=2)

        assert publisher.on(import_topic(record.id)) == []
        message = publisher.on("admin_imports")[0]
        assert message["type"] == "created"
        assert message["pending_imports"] == 2

    def test_publish_failure_is_contained(self) -> None:
        publisher = MagicMock()
        publisher.publish.side_effect = ConnectionError("redis unavailable")
        broadcaster = ProgressBroadcaster(publisher)

        broadcaster.started(make_record(total_rows=1))
        broadcaster.failed(make_record(status=ImportStatus.FAILED))

        assert publisher.publish.call_count == 4
