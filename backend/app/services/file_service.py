import logging
import mimetypes
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import List, Optional
import filetype
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from uuid6 import uuid7
from app.core.config import settings
from app.core.errors import DriveError, ErrorKind, FileStorageError
from app.models.file import File
from app.models.user import User
from app.repositories.file_repository import file_repository
from app.services import file_kinds
from app.storage.object_store import ObjectStoreClient, object_store

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
FALLBACK_MIME_TYPE = "application/octet-stream"
# filetype only inspects the file header
SNIFF_BYTES = 8192


@dataclass
class FilePage:
    page: int
    size: int
    total: int
    files: List[File]


def clean_filename(filename: Optional[str]) -> str:
    """Keep only the last path component of a client-supplied filename"""
    return (filename or "").replace("\\", "/").split("/")[-1].strip()


def detect_mime_type(data: bytes, filename: str, declared_type: Optional[str]) -> str:
    """
    Content sniffing first, then the client's declared type, then the
    extension, then application/octet-stream.
    """
    sniffed = filetype.guess_mime(data[:SNIFF_BYTES])
    if sniffed:
        return sniffed

    declared = (declared_type or "").split(";")[0].strip().lower()
    if declared and declared != FALLBACK_MIME_TYPE:
        return declared

    guessed, _ = mimetypes.guess_type(filename)
    return guessed or FALLBACK_MIME_TYPE


class FileService:
    def __init__(self, store: ObjectStoreClient, max_file_size: int):
        self.store = store
        self.max_file_size = max_file_size

    def upload(
        self,
        db: Session,
        user: User,
        filename: Optional[str],
        declared_type: Optional[str],
        data: bytes,
        description: Optional[str] = None,
    ) -> File:
        """
        Store the bytes remotely, then record the metadata row.

        No row is written when the object store rejects the upload. When the
        row cannot be written after a successful upload, the remote object is
        deleted on a best-effort basis.
        """
        original_filename = clean_filename(filename)
        logger.info(f"Starting file upload for user: {user.id}, filename: {original_filename}")

        if not original_filename:
            raise DriveError(ErrorKind.BAD_REQUEST, "Filename is required")
        if not data:
            raise DriveError(ErrorKind.BAD_REQUEST, "File is empty")
        if len(data) > self.max_file_size:
            raise DriveError(ErrorKind.PAYLOAD_TOO_LARGE, "File size exceeds maximum allowed size")

        mime_type = detect_mime_type(data, original_filename, declared_type)
        logger.info(f"Uploading file with MIME type: {mime_type}")
        if file_kinds.is_forbidden(mime_type, original_filename):
            raise DriveError(
                ErrorKind.FORBIDDEN_CONTENT,
                f"File type not allowed for security reasons: {mime_type}",
            )

        extension = PurePosixPath(original_filename).suffix
        storage_path = f"{user.email}/{uuid7()}{extension}"

        public_url = self.store.upload(storage_path, mime_type, data)

        record = File(
            user_id=user.id,
            filename=original_filename,
            storage_path=storage_path,
            url=public_url,
            mime_type=mime_type,
            size_bytes=len(data),
            description=(description or "").strip() or None,
        )
        try:
            file_repository.insert(db, record)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Could not save metadata for {storage_path}: {e}")
            self._discard_remote(storage_path)
            raise DriveError(ErrorKind.INTERNAL, "Could not save file metadata") from e

        db.refresh(record)
        logger.info(f"File uploaded successfully. ID: {record.id}, Storage Path: {storage_path}")
        return record

    def _discard_remote(self, storage_path: str) -> None:
        try:
            self.store.delete(storage_path)
        except FileStorageError as e:
            logger.warning(f"Orphaned object left in storage: {storage_path}: {e}")

    def list_files(
        self,
        db: Session,
        user: User,
        page: int = 0,
        size: int = DEFAULT_PAGE_SIZE,
        type_filter: Optional[str] = None,
        search: Optional[str] = None,
    ) -> FilePage:
        """A non-empty search term wins over the type filter; unknown types mean all files"""
        search_term = (search or "").strip()
        category = (type_filter or "").strip().lower()
        if category not in file_kinds.CATEGORIES:
            category = None

        rows, total = file_repository.page_active(
            db,
            user.id,
            page,
            size,
            category=None if search_term else category,
            search=search_term or None,
        )
        return FilePage(page=page, size=size, total=total, files=rows)

    def get_file(self, db: Session, user: User, file_id: uuid.UUID) -> File:
        record = file_repository.find_active(db, file_id, user.id)
        if record is None:
            raise DriveError(ErrorKind.NOT_FOUND, "File not found")
        return record

    def delete_file(self, db: Session, user: User, file_id: uuid.UUID) -> None:
        """Soft-delete the row, then drop the remote bytes on a best-effort basis"""
        logger.info(f"Deleting file: {file_id} for user: {user.id}")
        record = self.get_file(db, user, file_id)
        storage_path = record.storage_path

        updated = file_repository.mark_deleted(db, file_id, user.id, datetime.now(timezone.utc))
        if updated == 0:
            db.rollback()
            raise DriveError(ErrorKind.NOT_FOUND, "File not found")
        db.commit()

        try:
            self.store.delete(storage_path)
        except FileStorageError as e:
            logger.warning(f"Failed to delete {storage_path} from storage, file stays marked as deleted: {e}")

        logger.info(f"File deleted successfully: {file_id}")

    def restore_file(self, db: Session, user: User, file_id: uuid.UUID) -> None:
        logger.info(f"Restoring file: {file_id} for user: {user.id}")
        record = file_repository.find_owned(db, file_id, user.id)
        if record is None:
            raise DriveError(ErrorKind.NOT_FOUND, "File not found")
        if not record.is_deleted:
            raise DriveError(ErrorKind.BAD_REQUEST, "File is not deleted")

        if file_repository.restore(db, file_id, user.id) == 0:
            db.rollback()
            raise DriveError(ErrorKind.BAD_REQUEST, "File is not deleted")
        db.commit()
        logger.info(f"File restored successfully: {file_id}")

    def storage_used(self, db: Session, user: User) -> int:
        return file_repository.storage_used(db, user.id)

    def download_url(self, db: Session, user: User, file_id: uuid.UUID) -> str:
        return self.get_file(db, user, file_id).url


file_service = FileService(object_store, settings.MAX_FILE_SIZE)
