"""Admin endpoints to create and inspect user imports."""
from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from user_manager.api.dependencies import get_broadcaster, get_current_user_id, get_storage
from user_manager.core.config import get_settings
from user_manager.core.db import get_session
from user_manager.schemas.user_import import UserImportListResponse, UserImportResponse
from user_manager.services.file_storage import ImportFileStorage
from user_manager.services.import_broadcast import ProgressBroadcaster
from user_manager.services.import_service import ImportSchedulingError, ImportService, InvalidImportRequest

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/admin/imports", tags=["imports"])


@router.post(
    "",
    response_model=UserImportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user import",
    description=(
        "Accepts either an uploaded CSV/Excel file or a URL to download one from. "
        "Creates a pending import and schedules background processing; returns immediately."
    ),
)
def create_import(
    file: UploadFile | None = File(default=None, description="CSV or Excel file"),
    file_url: str | None = Form(default=None, description="URL to download the file from"),
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    storage: ImportFileStorage = Depends(get_storage),
    broadcaster: ProgressBroadcaster = Depends(get_broadcaster),
) -> UserImportResponse:
    service = ImportService(
        session,
        storage,
        broadcaster=broadcaster,
        max_upload_size_mb=settings.max_upload_size_mb,
    )
    has_url = bool(file_url and file_url.strip())
    try:
        if file is not None and file.filename and has_url:
            raise InvalidImportRequest("Provide either a file or a file URL, not both")
        if has_url:
            record = service.create_from_url(user_id, file_url=file_url)
        elif file is not None and file.filename:
            record = service.create_from_upload(
                user_id,
                filename=file.filename,
                content_type=file.content_type,
                stream=file.file,
            )
        else:
            raise InvalidImportRequest("File must be attached")
    except InvalidImportRequest as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail={"errors": [str(e)]})
    except ImportSchedulingError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail={"errors": [str(e)]})
    finally:
        if file is not None:
            file.file.close()

    logger.info(f"User {user_id} created import {record.id}")
    return UserImportResponse.model_validate(record)


@router.get("", response_model=UserImportListResponse, summary="List user imports")
def list_imports(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    storage: ImportFileStorage = Depends(get_storage),
) -> UserImportListResponse:
    records, total = ImportService(session, storage).list_imports(page=page, page_size=page_size)
    return UserImportListResponse(
        items=[UserImportResponse.model_validate(record) for record in records],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{import_id}", response_model=UserImportResponse, summary="Show a user import")
def get_import(
    import_id: UUID,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    storage: ImportFileStorage = Depends(get_storage),
) -> UserImportResponse:
    record = ImportService(session, storage).get_import(import_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Import not found: {import_id}")
    return UserImportResponse.model_validate(record)
