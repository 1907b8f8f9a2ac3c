import uuid
from typing import Optional
from sqlalchemy.orm import Session
from app.models.user import AuthProvider, User


class UserRepository:
    """Parameterised queries over the users table. Callers own the transaction."""

    @staticmethod
    def get_by_id(db: Session, user_id: uuid.UUID) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == email).first()

    @staticmethod
    def insert(db: Session, user: User) -> User:
        """Stage a new user; a duplicate email raises IntegrityError here"""
        db.add(user)
        db.flush()
        return user

    @staticmethod
    def update_name(db: Session, user_id: uuid.UUID, name: str) -> int:
        return db.query(User).filter(User.id == user_id).update(
            {User.name: name}, synchronize_session="fetch")

    @staticmethod
    def set_local_password(db: Session, user_id: uuid.UUID, password_hash: str) -> int:
        """Store a password hash; an account with a password is a LOCAL account"""
        return db.query(User).filter(User.id == user_id).update(
            {User.password_hash: password_hash, User.auth_provider: AuthProvider.LOCAL},
            synchronize_session="fetch")


user_repository = UserRepository()
