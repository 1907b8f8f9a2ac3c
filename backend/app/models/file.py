from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, Column, DateTime, ForeignKey,
    Index, String, Text, Uuid,
)
from uuid6 import uuid7
from app.core.database import Base
from app.models.user import utcnow
from app.services import file_kinds


class File(Base):
    """
    Metadata of a file stored in the object store.

    The bytes live under storage_path ("{owner email}/{time-ordered id}{ext}");
    is_deleted and deleted_at always move together.
    """
    __tablename__ = "files"
    __table_args__ = (
        CheckConstraint("size_bytes > 0", name="ck_files_size_positive"),
        Index("ix_files_user_deleted", "user_id", "is_deleted"),
    )

    # Time-ordered ids keep the (uploaded_at, id) ordering stable
    id = Column(Uuid, primary_key=True, default=uuid7)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    # Original filename, for display
    filename = Column(String(255), nullable=False)
    storage_path = Column(String(1024), unique=True, nullable=False)
    # Public URL composed from storage_path when the file was uploaded
    url = Column(String(2048), nullable=True)
    mime_type = Column(String(255), nullable=False)
    size_bytes = Column(BigInteger, nullable=False)
    uploaded_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    description = Column(Text, nullable=True)

    @property
    def kind(self) -> str:
        return file_kinds.kind_of(self.mime_type)

    @property
    def is_previewable(self) -> bool:
        return file_kinds.is_previewable(self.mime_type)

