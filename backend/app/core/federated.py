"""Verification of access tokens issued by the federated identity provider."""

import logging
from dataclasses import dataclass
from jose import JWTError, jwt
from app.core.config import settings
from app.core.errors import DriveError, ErrorKind

logger = logging.getLogger(__name__)

UNKNOWN_USER_NAME = "Unknown User"


@dataclass(frozen=True)
class FederatedClaims:
    email: str
    name: str


def name_from_claims(claims: dict) -> str:
    """Display name from user_metadata, else the local part of the email"""
    metadata = claims.get("user_metadata")
    if isinstance(metadata, dict):
        for key in ("full_name", "name"):
            value = str(metadata.get(key) or "").strip()
            if value:
                return value

    email = claims.get("email") or ""
    local_part = str(email).split("@", 1)[0].strip()
    return local_part or UNKNOWN_USER_NAME


class ExternalTokenVerifier:
    def __init__(self, secret: str, algorithms: tuple = ("HS256",)):
        self._secret = secret
        self._algorithms = list(algorithms)

    def verify(self, token: str) -> FederatedClaims:
        if not self._secret:
            logger.error("Federated login attempted but SUPABASE_JWT_SECRET is not configured")
            raise DriveError(ErrorKind.INVALID_EXTERNAL_TOKEN, "Invalid authentication token")

        try:
            # Provider tokens carry aud="authenticated"; only signature and expiry matter here
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=self._algorithms,
                options={"verify_aud": False},
            )
        except JWTError as e:
            logger.error(f"Failed to validate federated token: {e}")
            raise DriveError(ErrorKind.INVALID_EXTERNAL_TOKEN, "Invalid authentication token")

        email = claims.get("email")
        if not isinstance(email, str) or not email:
            logger.error("Federated token has no email claim")
            raise DriveError(ErrorKind.INVALID_EXTERNAL_TOKEN, "Invalid authentication token")

        return FederatedClaims(email=email, name=name_from_claims(claims))


external_token_verifier = ExternalTokenVerifier(settings.SUPABASE_JWT_SECRET)
