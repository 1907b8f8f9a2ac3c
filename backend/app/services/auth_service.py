import logging
from dataclasses import dataclass
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.core.config import settings
from app.core.errors import DriveError, EmailDeliveryError, ErrorKind
from app.core.federated import UNKNOWN_USER_NAME, ExternalTokenVerifier, external_token_verifier
from app.core.security import Principal, TokenSigner, get_password_hash, token_signer, verify_password
from app.models.user import AuthProvider, User
from app.repositories.user_repository import user_repository
from app.services.email_service import EmailService, email_service
from app.services.reset_tokens import ResetTokenLedger, reset_token_ledger
from app.storage.object_store import ObjectStoreClient, object_store

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 100


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    expires_in: int
    name: str
    email: str
    token_type: str = "Bearer"


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    """
    Registration, logins and password management.

    Owns the reconciliation between local accounts and accounts created by
    the federated provider: there is exactly one users row per email.
    """

    def __init__(
        self,
        signer: TokenSigner,
        verifier: ExternalTokenVerifier,
        store: ObjectStoreClient,
        ledger: ResetTokenLedger,
        mailer: EmailService,
        frontend_url: str,
    ):
        self.signer = signer
        self.verifier = verifier
        self.store = store
        self.ledger = ledger
        self.mailer = mailer
        self.frontend_url = frontend_url.rstrip("/")

    def _session_for(self, user: User) -> AuthSession:
        return AuthSession(
            access_token=self.signer.mint(user.id, user.name),
            expires_in=self.signer.expires_in,
            name=user.name,
            email=user.email,
        )

    def _ensure_user_folder(self, email: str) -> None:
        # The folder only exists to make the prefix visible; uploads work without it
        try:
            self.store.create_user_folder(email)
        except DriveError as e:
            logger.warning(f"Failed to create user folder for {email}: {e}")

    def register(self, db: Session, name: str, email: str, password: str) -> AuthSession:
        email = normalize_email(email)
        logger.info(f"Registering new user with email: {email}")

        if user_repository.get_by_email(db, email) is not None:
            raise DriveError(ErrorKind.EMAIL_IN_USE, "Email address is already in use")

        user = User(
            name=name.strip(),
            email=email,
            password_hash=get_password_hash(password),
            auth_provider=AuthProvider.LOCAL,
        )
        try:
            user_repository.insert(db, user)
            db.commit()
        except IntegrityError:
            # Two registrations raced past the lookup; the unique constraint decides
            db.rollback()
            raise DriveError(ErrorKind.EMAIL_IN_USE, "Email address is already in use")
        db.refresh(user)
        logger.info(f"User registered successfully with ID: {user.id}")

        self._ensure_user_folder(user.email)
        return self._session_for(user)

    def login(self, db: Session, email: str, password: str) -> AuthSession:
        email = normalize_email(email)
        logger.info(f"User login attempt for: {email}")

        user = user_repository.get_by_email(db, email)
        # Same answer for unknown email, wrong password and password-less accounts
        if user is None or not verify_password(password, user.password_hash):
            raise DriveError(ErrorKind.BAD_CREDENTIALS, "Invalid email or password")

        logger.info(f"User logged in successfully: {user.id}")
        return self._session_for(user)

    def change_password(self, db: Session, principal: Principal, old_password: str, new_password: str) -> None:
        user = self.current_user(db, principal)
        if not verify_password(old_password, user.password_hash):
            raise DriveError(ErrorKind.INCORRECT_PASSWORD, "Old password is incorrect")

        user_repository.set_local_password(db, user.id, get_password_hash(new_password))
        db.commit()
        logger.info(f"Password changed successfully for user: {user.id}")

    def login_federated(self, db: Session, external_token: str) -> AuthSession:
        claims = self.verifier.verify(external_token)
        user = self.reconcile_federated_user(db, claims.email, claims.name)
        self._ensure_user_folder(user.email)
        logger.info(f"Federated authentication successful for user: {user.email}")
        return self._session_for(user)

    def reconcile_federated_user(self, db: Session, email: str, name: str) -> User:
        """
        Return the single users row for ``email``, creating it if needed.

        An existing row gets its name replaced when it differs. When a
        concurrent login inserted the row first, the unique constraint fails
        our insert and the winner's row is returned instead.
        """
        email = normalize_email(email)
        name = (name or "").strip()[:NAME_MAX_LENGTH] or UNKNOWN_USER_NAME

        user = user_repository.get_by_email(db, email)
        if user is not None:
            if user.name != name:
                user_repository.update_name(db, user.id, name)
                db.commit()
                logger.info(f"Updated name of existing user: {email}")
            return user

        new_user = User(name=name, email=email, password_hash=None, auth_provider=AuthProvider.GOOGLE)
        try:
            user_repository.insert(db, new_user)
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning(f"Concurrent creation of user {email}, reading the existing row")
            existing = user_repository.get_by_email(db, email)
            if existing is None:
                raise
            return existing

        logger.info(f"Created new federated user: {email}")
        return new_user

    def forgot_password(self, db: Session, email: str) -> None:
        """
        Mint a reset token and mail the reset link.

        Never reveals whether the email is registered: unknown emails and
        delivery failures are only logged.
        """
        email = normalize_email(email)
        user = user_repository.get_by_email(db, email)
        if user is None:
            logger.warning(f"Password reset requested for unknown email: {email}")
            return

        token = self.ledger.mint(user.email)
        reset_url = f"{self.frontend_url}/reset-password?token={token}"
        try:
            self.mailer.send_password_reset(user.email, reset_url)
        except EmailDeliveryError:
            self.ledger.consume(token)
            logger.error(f"Password reset email could not be delivered to {email}")

    def reset_password(self, db: Session, token: str, new_password: str) -> None:
        email = self.ledger.lookup(token)
        if email is None:
            logger.warning("Invalid or expired reset token presented")
            raise DriveError(ErrorKind.INVALID_RESET_TOKEN, "Invalid or expired reset token")

        user = user_repository.get_by_email(db, email)
        if user is None:
            raise DriveError(ErrorKind.NOT_FOUND, "User not found")

        # Claiming the token is the commit point: a concurrent reset loses here
        if self.ledger.consume(token) is None:
            raise DriveError(ErrorKind.INVALID_RESET_TOKEN, "Invalid or expired reset token")

        user_repository.set_local_password(db, user.id, get_password_hash(new_password))
        db.commit()
        logger.info(f"Password reset successfully for user: {email}")

    def current_user(self, db: Session, principal: Principal) -> User:
        user = user_repository.get_by_id(db, principal.user_id)
        if user is None:
            raise DriveError(ErrorKind.UNAUTHORIZED, "User no longer exists")
        return user


auth_service = AuthService(
    token_signer,
    external_token_verifier,
    object_store,
    reset_token_ledger,
    email_service,
    settings.FRONTEND_URL,
)
