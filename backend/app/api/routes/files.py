import uuid
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, File as FastAPIFile, Form, Query, UploadFile
from sqlalchemy.orm import Session
from app.api.dependencies import get_current_user, get_file_service
from app.api.schemas import ApiResponse, CamelModel
from app.core.database import get_db
from app.models.file import File
from app.models.user import User
from app.services.file_service import DEFAULT_PAGE_SIZE, FileService

router = APIRouter(prefix="/files", tags=["files"])

MAX_PAGE_SIZE = 100


class FileView(CamelModel):
    id: uuid.UUID
    name: str
    url: Optional[str]
    mime_type: str
    size: int
    uploaded_at: datetime
    kind: str
    description: Optional[str] = None
    is_previewable: bool

    @classmethod
    def from_record(cls, record: File) -> "FileView":
        return cls(
            id=record.id,
            name=record.filename,
            url=record.url,
            mime_type=record.mime_type,
            size=record.size_bytes,
            uploaded_at=record.uploaded_at,
            kind=record.kind,
            description=record.description,
            is_previewable=record.is_previewable,
        )


class FileListResponse(CamelModel):
    page: int
    size: int
    total: int
    files: List[FileView]


class StorageUsageResponse(CamelModel):
    storage_used: int


class DownloadUrlResponse(CamelModel):
    download_url: Optional[str]


@router.post("/upload", response_model=ApiResponse[FileView])
def upload_file(
    file: UploadFile = FastAPIFile(...),
    description: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    files: FileService = Depends(get_file_service),
):
    """Upload a file to the caller's folder"""
    data = file.file.read()
    record = files.upload(db, current_user, file.filename, file.content_type, data, description)
    return ApiResponse[FileView](message="File uploaded successfully", data=FileView.from_record(record))


@router.get("", response_model=ApiResponse[FileListResponse])
def list_files(
    page: int = Query(0, ge=0),
    size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    type: str = Query("all"),
    search: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    files: FileService = Depends(get_file_service),
):
    """List the caller's active files, newest first"""
    result = files.list_files(db, current_user, page, size, type_filter=type, search=search)
    return ApiResponse[FileListResponse](data=FileListResponse(
        page=result.page,
        size=result.size,
        total=result.total,
        files=[FileView.from_record(record) for record in result.files],
    ))


# Declared before /{file_id} so "usage" is not parsed as an id
@router.get("/usage", response_model=ApiResponse[StorageUsageResponse])
def get_storage_usage(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    files: FileService = Depends(get_file_service),
):
    """Bytes used by the caller's active files"""
    used = files.storage_used(db, current_user)
    return ApiResponse[StorageUsageResponse](data=StorageUsageResponse(storage_used=used))


@router.get("/{file_id}", response_model=ApiResponse[FileView])
def get_file(
    file_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    files: FileService = Depends(get_file_service),
):
    """Get a single file by ID"""
    record = files.get_file(db, current_user, file_id)
    return ApiResponse[FileView](data=FileView.from_record(record))


@router.delete("/{file_id}", response_model=ApiResponse)
def delete_file(
    file_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    files: FileService = Depends(get_file_service),
):
    """Move a file to the trash; its stored bytes are removed as well"""
    files.delete_file(db, current_user, file_id)
    return ApiResponse(message="File deleted successfully")


@router.post("/{file_id}/restore", response_model=ApiResponse)
def restore_file(
    file_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    files: FileService = Depends(get_file_service),
):
    files.restore_file(db, current_user, file_id)
    return ApiResponse(message="File restored successfully")


@router.get("/{file_id}/download", response_model=ApiResponse[DownloadUrlResponse])
def get_download_url(
    file_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    files: FileService = Depends(get_file_service),
):
    url = files.download_url(db, current_user, file_id)
    return ApiResponse[DownloadUrlResponse](data=DownloadUrlResponse(download_url=url))
