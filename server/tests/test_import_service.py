"""Tests for ImportRepository state transitions and ImportService creation."""
from __future__ import annotations

import io
from unittest.mock import MagicMock, patch
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from user_manager.core.security import hash_password
from user_manager.models import ImportStatus, User, UserImport
from user_manager.services.file_storage import ImportFileStorage
from user_manager.services.import_broadcast import ProgressBroadcaster
from user_manager.services.import_service import ImportRepository, ImportSchedulingError, ImportService, InvalidImportRequest


def make_owner(session: Session, email: str = "admin@example.com") -> User:
    owner = User(full_name="Admin User", email=email, role="admin", encrypted_password=hash_password("secret1"))
    session.add(owner)
    session.commit()
    return owner


class TestImportRepository:
    """Test suite for ImportRepository."""

    def test_create_import(self, db_session: Session) -> None:
        owner = make_owner(db_session)
        record = ImportRepository(db_session).create(owner_id=owner.id, file_name="users.csv")

        assert isinstance(record.id, UUID)
        assert record.status == ImportStatus.PENDING
        assert record.progress == 0
        assert record.total_rows == 0
        assert record.percentage == 0
        assert record.error_message is None
        assert record.created_at is not None

    def test_claim_only_succeeds_once(self, db_session: Session) -> None:
        repo = ImportRepository(db_session)
        record = repo.create(owner_id=None)

        assert repo.claim(record.id) is True
        assert repo.claim(record.id) is False

        db_session.expire_all()
        assert repo.get_by_id(record.id).status == ImportStatus.PROCESSING

    def test_claim_unknown_import(self, db_session: Session) -> None:
        assert ImportRepository(db_session).claim(uuid4()) is False

    def test_update_progress_requires_processing(self, db_session: Session) -> None:
        repo = ImportRepository(db_session)
        record = repo.create(owner_id=None)

        assert repo.update_progress(record.id, 0, total=5) is None

        repo.claim(record.id)
        db_session.expire_all()
        updated = repo.update_progress(record.id, 2, total=5)
        assert updated.progress == 2
        assert updated.total_rows == 5
        assert updated.percentage == 40

        updated = repo.update_progress(record.id, 3)
        assert updated.progress == 3
        assert updated.total_rows == 5

    def test_update_progress_rejects_out_of_range(self, db_session: Session) -> None:
        repo = ImportRepository(db_session)
        record = repo.create(owner_id=None)
        repo.claim(record.id)
        db_session.expire_all()
        repo.update_progress(record.id, 0, total=3)

        with pytest.raises(ValueError):
            repo.update_progress(record.id, 4)
        with pytest.raises(ValueError):
            repo.update_progress(record.id, -1)

    def test_mark_completed_sets_progress_to_total(self, db_session: Session) -> None:
        repo = ImportRepository(db_session)
        record = repo.create(owner_id=None)
        repo.claim(record.id)
        db_session.expire_all()
        repo.update_progress(record.id, 1, total=4)

        assert repo.mark_completed(record.id, "Import completed with 1 errors. First errors: Row 3: x") is True

        db_session.expire_all()
        done = repo.get_by_id(record.id)
        assert done.status == ImportStatus.COMPLETED
        assert done.progress == 4
        assert done.percentage == 100
        assert "1 errors" in done.error_message

    def test_pending_import_cannot_complete(self, db_session: Session) -> None:
        repo = ImportRepository(db_session)
        record = repo.create(owner_id=None)

        assert repo.mark_completed(record.id) is False

    def test_mark_failed_from_pending_and_terminal_is_final(self, db_session: Session) -> None:
        repo = ImportRepository(db_session)
        record = repo.create(owner_id=None)

        assert repo.mark_failed(record.id, "Failed to download file") is True
        assert repo.claim(record.id) is False
        assert repo.mark_failed(record.id, "again") is False

        db_session.expire_all()
        failed = repo.get_by_id(record.id)
        assert failed.status == ImportStatus.FAILED
        assert failed.error_message == "Failed to download file"

    def test_completed_import_cannot_fail(self, db_session: Session) -> None:
        repo = ImportRepository(db_session)
        record = repo.create(owner_id=None)
        repo.claim(record.id)
        repo.mark_completed(record.id)

        assert repo.mark_failed(record.id, "late error") is False
        db_session.expire_all()
        assert repo.get_by_id(record.id).status == ImportStatus.COMPLETED

    def test_deleting_owner_keeps_import(self, db_session: Session) -> None:
        owner = make_owner(db_session)
        record = ImportRepository(db_session).create(owner_id=owner.id)

        db_session.delete(owner)
        db_session.commit()
        db_session.expire_all()

        kept = db_session.get(UserImport, record.id)
        assert kept is not None
        assert kept.owner_id is None

    def test_list_recent_and_count_active(self, db_session: Session) -> None:
        repo = ImportRepository(db_session)
        first = repo.create(owner_id=None)
        repo.create(owner_id=None)
        third = repo.create(owner_id=None)
        repo.mark_failed(first.id, "boom")
        repo.claim(third.id)

        items, total = repo.list_recent(page=1, page_size=2)
        assert total == 3
        assert len(items) == 2
        assert repo.count_active() == 2


class TestImportService:
    """Test suite for ImportService."""

    @pytest.fixture
    def storage(self, tmp_path) -> ImportFileStorage:
        return ImportFileStorage(tmp_path / "files")

    def test_create_from_upload_stores_file_and_schedules(self, db_session, storage, publisher) -> None:
        owner = make_owner(db_session)
        service = ImportService(db_session, storage, broadcaster=ProgressBroadcaster(publisher))

        with patch("user_manager.tasks.import_tasks.process_user_import") as mock_task:
            mock_task.apply_async.return_value = MagicMock(id="task-1")
            record = service.create_from_upload(
                owner.id,
                filename="users.csv",
                content_type="text/csv",
                stream=io.BytesIO(b"full_name,email\nAda Lovelace,ada@example.com\n"),
            )

        assert record.status == ImportStatus.PENDING
        assert record.file_name == "users.csv"
        assert record.owner_id == owner.id
        assert storage.read(record.file_path).startswith(b"full_name,email")
        mock_task.apply_async.assert_called_once()
        assert mock_task.apply_async.call_args.kwargs["args"] == [str(record.id)]

        created = publisher.on("admin_imports")
        assert created[0]["type"] == "created"
        assert created[0]["data"]["topic"] == f"import_{record.id}"
        assert created[0]["pending_imports"] == 1

    def test_create_from_upload_rejects_content_type(self, db_session, storage) -> None:
        service = ImportService(db_session, storage)

        with pytest.raises(InvalidImportRequest, match="CSV or Excel"):
            service.create_from_upload(
                None,
                filename="notes.txt",
                content_type="text/plain",
                stream=io.BytesIO(b"hello"),
            )
        assert ImportRepository(db_session).list_recent()[1] == 0

    def test_create_from_upload_enforces_size_limit(self, db_session, storage) -> None:
        service = ImportService(db_session, storage, max_upload_size_mb=0)

        with pytest.raises(InvalidImportRequest, match="maximum allowed size"):
            service.create_from_upload(
                None,
                filename="users.csv",
                content_type="text/csv",
                stream=io.BytesIO(b"full_name,email\n"),
            )
        assert ImportRepository(db_session).list_recent()[1] == 0

    def test_create_from_url_schedules_download(self, db_session, storage) -> None:
        service = ImportService(db_session, storage)

        with patch("user_manager.tasks.download_tasks.download_import_file") as mock_task:
            mock_task.apply_async.return_value = MagicMock(id="task-2")
            record = service.create_from_url(None, file_url="https://example.com/data/users.xlsx?token=1")

        assert record.status == ImportStatus.PENDING
        assert record.file_path is None
        assert record.file_name == "users.xlsx"
        args = mock_task.apply_async.call_args.kwargs["args"]
        assert args == [str(record.id), "https://example.com/data/users.xlsx?token=1"]

    def test_create_from_url_requires_url(self, db_session, storage) -> None:
        with pytest.raises(InvalidImportRequest):
            ImportService(db_session, storage).create_from_url(None, file_url="  ")

    def test_broker_failure_fails_uploaded_import(self, db_session, storage, publisher) -> None:
        service = ImportService(db_session, storage, broadcaster=ProgressBroadcaster(publisher))

        with patch("user_manager.tasks.import_tasks.process_user_import") as mock_task:
            mock_task.apply_async.side_effect = ConnectionError("broker unreachable")
            with pytest.raises(ImportSchedulingError, match="broker unreachable"):
                service.create_from_upload(
                    None,
                    filename="users.csv",
                    content_type="text/csv",
                    stream=io.BytesIO(b"full_name,email\n"),
                )

        db_session.expire_all()
        items, total = ImportRepository(db_session).list_recent()
        assert total == 1
        assert items[0].status == ImportStatus.FAILED
        assert items[0].error_message == "Failed to schedule import: broker unreachable"
        assert [m["type"] for m in publisher.on("admin_imports")] == ["created", "failed"]

    def test_broker_failure_fails_url_import(self, db_session, storage) -> None:
        service = ImportService(db_session, storage)

        with patch("user_manager.tasks.download_tasks.download_import_file") as mock_task:
            mock_task.apply_async.side_effect = ConnectionError("broker unreachable")
            with pytest.raises(ImportSchedulingError):
                service.create_from_url(None, file_url="https://example.com/users.csv")

        db_session.expire_all()
        assert ImportRepository(db_session).count_active() == 0
