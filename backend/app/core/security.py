import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from app.core.config import settings
from app.core.errors import ErrorKind, TokenError

logger = logging.getLogger(__name__)

MIN_SECRET_BYTES = 32

# CryptContext handles password hashing using bcrypt
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=12)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against a hash using constant-time comparison"""
    # Federated accounts have no hash and can never log in with a password
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt"""
    # bcrypt generates a salt per hash, the same password never hashes twice the same
    return pwd_context.hash(password)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller of a request"""
    user_id: uuid.UUID
    name: str


class TokenSigner:
    """
    Mints and verifies first-party session tokens.

    Tokens are HS256 JWTs carrying ``sub`` (user id), ``name``, ``iat`` and
    ``exp = iat + expires_in``.
    """

    def __init__(self, secret: str, expires_in: int, algorithm: str = "HS256"):
        if len(secret.encode("utf-8")) < MIN_SECRET_BYTES:
            raise ValueError(
                f"JWT secret must be at least {MIN_SECRET_BYTES} bytes long")
        self._secret = secret
        self.expires_in = expires_in
        self.algorithm = algorithm

    def mint(self, user_id: uuid.UUID, name: str) -> str:
        issued_at = int(datetime.now(timezone.utc).timestamp())
        claims = {
            "sub": str(user_id),
            "name": name,
            "iat": issued_at,
            "exp": issued_at + self.expires_in,
        }
        return jwt.encode(claims, self._secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Principal:
        if not token or token.count(".") != 2:
            raise TokenError(ErrorKind.TOKEN_MALFORMED, "Malformed token")

        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            raise TokenError(ErrorKind.TOKEN_MALFORMED, "Malformed token")

        if header.get("alg") != self.algorithm:
            raise TokenError(ErrorKind.TOKEN_UNSUPPORTED, "Unsupported token")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require_exp": True, "require_sub": True},
            )
        except ExpiredSignatureError:
            raise TokenError(ErrorKind.TOKEN_EXPIRED, "Token expired")
        except JWTError as e:
            logger.debug(f"Rejected session token: {e}")
            raise TokenError(ErrorKind.INVALID_TOKEN, "Invalid token")

        try:
            user_id = uuid.UUID(payload["sub"])
        except (ValueError, TypeError, AttributeError):
            raise TokenError(ErrorKind.INVALID_TOKEN, "Invalid token")

        name = payload.get("name")
        if not isinstance(name, str):
            raise TokenError(ErrorKind.INVALID_TOKEN, "Invalid token")

        return Principal(user_id=user_id, name=name)


token_signer = TokenSigner(
    settings.JWT_SECRET, settings.JWT_EXPIRES_IN, settings.JWT_ALGORITHM)
