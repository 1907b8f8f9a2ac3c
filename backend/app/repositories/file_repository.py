import uuid
from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy import and_, func, not_, or_
from sqlalchemy.orm import Session
from app.models.file import File
from app.services import file_kinds

_lower_mime = func.lower(File.mime_type)
_is_media = or_(*[_lower_mime.startswith(prefix) for prefix in file_kinds.MEDIA_PREFIXES.values()])
_has_document_marker = or_(*[_lower_mime.contains(marker) for marker in file_kinds.DOCUMENT_MARKERS])


def category_predicate(category: str):
    """SQL counterpart of file_kinds.kind_of(mime_type) == category"""
    if category in file_kinds.MEDIA_PREFIXES:
        return _lower_mime.startswith(file_kinds.MEDIA_PREFIXES[category])
    if category == file_kinds.DOCUMENT:
        # image/svg+xml stays an image
        return and_(not_(_is_media), _has_document_marker)
    if category == file_kinds.OTHER:
        return not_(or_(_is_media, _has_document_marker))
    raise ValueError(f"Unknown file category: {category}")


class FileRepository:
    """
    Queries over the files table.

    Every lookup and update of a single file carries the owner (and, where
    relevant, the deletion state) in its WHERE clause.
    """

    @staticmethod
    def insert(db: Session, file: File) -> File:
        db.add(file)
        db.flush()
        return file

    @staticmethod
    def find_active(db: Session, file_id: uuid.UUID, user_id: uuid.UUID) -> Optional[File]:
        return db.query(File).filter(
            File.id == file_id,
            File.user_id == user_id,
            File.is_deleted.is_(False),
        ).first()

    @staticmethod
    def find_owned(db: Session, file_id: uuid.UUID, user_id: uuid.UUID) -> Optional[File]:
        """Owned file in any deletion state"""
        return db.query(File).filter(
            File.id == file_id,
            File.user_id == user_id,
        ).first()

    @staticmethod
    def page_active(
        db: Session,
        user_id: uuid.UUID,
        page: int,
        size: int,
        category: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[File], int]:
        """Newest first; returns the requested page and the total match count"""
        query = db.query(File).filter(
            File.user_id == user_id,
            File.is_deleted.is_(False),
        )
        if search:
            query = query.filter(
                func.lower(File.filename).contains(search.lower(), autoescape=True))
        elif category:
            query = query.filter(category_predicate(category))

        total = query.count()
        rows = (
            query.order_by(File.uploaded_at.desc(), File.id.desc())
            .offset(page * size)
            .limit(size)
            .all()
        )
        return rows, total

    @staticmethod
    def mark_deleted(db: Session, file_id: uuid.UUID, user_id: uuid.UUID, deleted_at: datetime) -> int:
        return db.query(File).filter(
            File.id == file_id,
            File.user_id == user_id,
            File.is_deleted.is_(False),
        ).update(
            {File.is_deleted: True, File.deleted_at: deleted_at},
            synchronize_session="fetch",
        )

    @staticmethod
    def restore(db: Session, file_id: uuid.UUID, user_id: uuid.UUID) -> int:
        return db.query(File).filter(
            File.id == file_id,
            File.user_id == user_id,
            File.is_deleted.is_(True),
        ).update(
            {File.is_deleted: False, File.deleted_at: None},
            synchronize_session="fetch",
        )

    @staticmethod
    def storage_used(db: Session, user_id: uuid.UUID) -> int:
        total = db.query(func.coalesce(func.sum(File.size_bytes), 0)).filter(
            File.user_id == user_id,
            File.is_deleted.is_(False),
        ).scalar()
        return int(total or 0)


file_repository = FileRepository()
