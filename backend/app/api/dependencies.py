from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from app.core.database import get_db
from app.core.errors import DriveError, ErrorKind
from app.core.security import Principal, token_signer
from app.models.user import User
from app.services.auth_service import AuthService, auth_service
from app.services.file_service import FileService, file_service

# Extracts the bearer token from the Authorization header
# tokenUrl tells FastAPI where to find the login endpoint for Swagger UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/login", auto_error=False)


def get_auth_service() -> AuthService:
    return auth_service


def get_file_service() -> FileService:
    return file_service


def get_current_principal(token: str | None = Depends(oauth2_scheme)) -> Principal:
    """
    Verify the session token and return the caller.

    The principal lives only for the request and is handed to the services
    explicitly.
    """
    if token is None:
        raise DriveError(ErrorKind.UNAUTHORIZED, "Authentication required")
    return token_signer.verify(token)


def get_current_user(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> User:
    """Load the user row of the caller; a token for a vanished user is rejected"""
    return auth.current_user(db, principal)
