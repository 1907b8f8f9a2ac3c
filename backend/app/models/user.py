import enum
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Enum, Uuid
from app.core.database import Base


class AuthProvider(str, enum.Enum):
    LOCAL = "LOCAL"
    # Federated accounts; the provider is reached through Google sign-in
    GOOGLE = "GOOGLE"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """
    Canonical account record shared by local-password and federated logins.

    password_hash is set iff auth_provider is LOCAL. Files reference users
    only through queries; there is no navigated relationship.
    """
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    # Uniqueness is enforced here, not by read-then-insert checks
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(60), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    auth_provider = Column(
        Enum(AuthProvider, name="auth_provider"),
        nullable=False,
        default=AuthProvider.LOCAL,
    )
