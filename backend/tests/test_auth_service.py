from unittest.mock import patch

import pytest

from app.core.errors import DriveError, EmailDeliveryError, ErrorKind
from app.core.security import Principal, token_signer
from app.models.user import AuthProvider, User
from app.repositories.user_repository import UserRepository, user_repository
from conftest import federated_token, make_user


def principal_for(user):
    return Principal(user_id=user.id, name=user.name)


def test_register_creates_local_user_and_session(db, auth_service, storage_backend):
    session = auth_service.register(db, "Ada Lovelace", " Ada@Example.com ", "Secret#1")

    user = db.query(User).one()
    assert user.email == "ada@example.com"
    assert user.auth_provider == AuthProvider.LOCAL
    assert user.password_hash and user.password_hash != "Secret#1"

    assert session.email == "ada@example.com"
    assert session.name == "Ada Lovelace"
    assert session.token_type == "Bearer"
    assert session.expires_in == token_signer.expires_in
    assert token_signer.verify(session.access_token).user_id == user.id

    assert "ada@example.com/.gitkeep" in storage_backend.objects


def test_register_duplicate_email(db, auth_service):
    auth_service.register(db, "Ada", "ada@example.com", "Secret#1")

    with pytest.raises(DriveError) as exc_info:
        auth_service.register(db, "Other Ada", "ADA@example.com", "Secret#2")

    assert exc_info.value.kind == ErrorKind.EMAIL_IN_USE
    assert db.query(User).count() == 1


def test_register_survives_folder_creation_failure(db, auth_service, storage_backend):
    storage_backend.fail_methods["POST"] = 500

    session = auth_service.register(db, "Ada", "ada@example.com", "Secret#1")

    assert session.email == "ada@example.com"
    assert db.query(User).count() == 1


def test_login(db, auth_service):
    user = make_user(db)

    session = auth_service.login(db, "ADA@example.com", "Secret#1")

    assert token_signer.verify(session.access_token).user_id == user.id
    assert session.name == "Ada"


@pytest.mark.parametrize("email, password", [
    ("ada@example.com", "wrong-password"),
    ("nobody@example.com", "Secret#1"),
])
def test_login_bad_credentials(db, auth_service, email, password):
    make_user(db)

    with pytest.raises(DriveError) as exc_info:
        auth_service.login(db, email, password)

    assert exc_info.value.kind == ErrorKind.BAD_CREDENTIALS
    assert exc_info.value.message == "Invalid email or password"


def test_federated_account_cannot_login_with_password(db, auth_service):
    make_user(db, email="grace@example.com", password=None, provider=AuthProvider.GOOGLE)

    with pytest.raises(DriveError) as exc_info:
        auth_service.login(db, "grace@example.com", "")
    assert exc_info.value.kind == ErrorKind.BAD_CREDENTIALS


def test_change_password(db, auth_service):
    user = make_user(db)

    auth_service.change_password(db, principal_for(user), "Secret#1", "NewSecret#2")

    auth_service.login(db, "ada@example.com", "NewSecret#2")
    with pytest.raises(DriveError):
        auth_service.login(db, "ada@example.com", "Secret#1")


def test_change_password_wrong_old_password(db, auth_service):
    user = make_user(db)

    with pytest.raises(DriveError) as exc_info:
        auth_service.change_password(db, principal_for(user), "not-it", "NewSecret#2")

    assert exc_info.value.kind == ErrorKind.INCORRECT_PASSWORD
    assert exc_info.value.status_code == 400
    auth_service.login(db, "ada@example.com", "Secret#1")


def test_federated_login_creates_user(db, auth_service, storage_backend):
    token = federated_token("Grace@Example.com", {"full_name": "Grace Hopper"})

    session = auth_service.login_federated(db, token)

    user = db.query(User).one()
    assert user.email == "grace@example.com"
    assert user.name == "Grace Hopper"
    assert user.auth_provider == AuthProvider.GOOGLE
    assert user.password_hash is None
    assert session.name == "Grace Hopper"
    assert token_signer.verify(session.access_token).user_id == user.id
    assert "grace@example.com/.gitkeep" in storage_backend.objects


def test_federated_login_reuses_row_and_updates_name(db, auth_service):
    auth_service.login_federated(db, federated_token("grace@example.com", {"full_name": "Grace Hopper"}))

    session = auth_service.login_federated(db, federated_token("grace@example.com", {"name": "Amazing Grace"}))

    user = db.query(User).one()
    assert user.name == "Amazing Grace"
    assert session.name == "Amazing Grace"


def test_federated_login_for_existing_local_account_keeps_password(db, auth_service):
    local = make_user(db, email="ada@example.com")

    auth_service.login_federated(db, federated_token("ada@example.com", {"full_name": "Ada Lovelace"}))

    user = db.query(User).one()
    assert user.id == local.id
    assert user.name == "Ada Lovelace"
    assert user.auth_provider == AuthProvider.LOCAL
    auth_service.login(db, "ada@example.com", "Secret#1")


def test_federated_login_rejects_bad_token(db, auth_service):
    with pytest.raises(DriveError) as exc_info:
        auth_service.login_federated(db, federated_token(secret="wrong-secret-that-is-long-enough-0000"))

    assert exc_info.value.kind == ErrorKind.INVALID_EXTERNAL_TOKEN
    assert db.query(User).count() == 0


def test_reconcile_truncates_long_names(db, auth_service):
    user = auth_service.reconcile_federated_user(db, "grace@example.com", "G" * 150)
    assert len(user.name) == 100


def test_reconcile_returns_row_of_concurrent_winner(db, auth_service):
    # Another login inserted the row between our lookup and our insert
    winner = make_user(db, email="grace@example.com", name="Grace", password=None, provider=AuthProvider.GOOGLE)
    calls = []

    def lookup_after_race(session, email):
        calls.append(email)
        if len(calls) == 1:
            return None
        return UserRepository.get_by_email(session, email)

    with patch.object(user_repository, "get_by_email", side_effect=lookup_after_race):
        user = auth_service.reconcile_federated_user(db, "grace@example.com", "Grace")

    assert user.id == winner.id
    assert len(calls) == 2
    assert db.query(User).count() == 1


def test_forgot_password_mails_reset_link(db, auth_service, ledger, mailer):
    make_user(db)

    auth_service.forgot_password(db, "ADA@example.com")

    mailer.send_password_reset.assert_called_once()
    to_email, reset_url = mailer.send_password_reset.call_args.args
    assert to_email == "ada@example.com"
    assert reset_url.startswith("http://frontend.test/reset-password?token=")
    token = reset_url.split("token=", 1)[1]
    assert ledger.lookup(token) == "ada@example.com"


def test_forgot_password_for_unknown_email_is_silent(db, auth_service, ledger, mailer):
    auth_service.forgot_password(db, "nobody@example.com")

    mailer.send_password_reset.assert_not_called()
    assert len(ledger) == 0


def test_forgot_password_masks_delivery_failure(db, auth_service, ledger, mailer):
    make_user(db)
    mailer.send_password_reset.side_effect = EmailDeliveryError("relay down")

    auth_service.forgot_password(db, "ada@example.com")

    # The unsent token is withdrawn
    assert len(ledger) == 0


def test_reset_password_flow(db, auth_service, ledger):
    make_user(db)
    token = ledger.mint("ada@example.com")

    auth_service.reset_password(db, token, "Brand#New1")

    auth_service.login(db, "ada@example.com", "Brand#New1")
    with pytest.raises(DriveError):
        auth_service.login(db, "ada@example.com", "Secret#1")

    # Single use
    with pytest.raises(DriveError) as exc_info:
        auth_service.reset_password(db, token, "Another#1")
    assert exc_info.value.kind == ErrorKind.INVALID_RESET_TOKEN


def test_reset_password_unknown_token(db, auth_service):
    with pytest.raises(DriveError) as exc_info:
        auth_service.reset_password(db, "f" * 64, "Brand#New1")
    assert exc_info.value.kind == ErrorKind.INVALID_RESET_TOKEN


def test_reset_password_for_vanished_user(db, auth_service, ledger):
    token = ledger.mint("gone@example.com")

    with pytest.raises(DriveError) as exc_info:
        auth_service.reset_password(db, token, "Brand#New1")
    assert exc_info.value.kind == ErrorKind.NOT_FOUND


def test_reset_password_gives_federated_user_a_local_password(db, auth_service, ledger):
    make_user(db, email="grace@example.com", password=None, provider=AuthProvider.GOOGLE)
    token = ledger.mint("grace@example.com")

    auth_service.reset_password(db, token, "Brand#New1")

    user = db.query(User).one()
    db.refresh(user)
    assert user.auth_provider == AuthProvider.LOCAL
    auth_service.login(db, "grace@example.com", "Brand#New1")


def test_current_user_for_deleted_account(db, auth_service):
    user = make_user(db)
    principal = principal_for(user)
    db.delete(user)
    db.commit()

    with pytest.raises(DriveError) as exc_info:
        auth_service.current_user(db, principal)
    assert exc_info.value.kind == ErrorKind.UNAUTHORIZED


def test_federated_login_with_blank_metadata_name_uses_email_prefix(db, auth_service):
    session = auth_service.login_federated(db, federated_token("grace@example.com", {"full_name": "   "}))

    assert session.name == "grace"
    assert db.query(User).one().name == "grace"


def test_reconcile_never_stores_a_blank_name(db, auth_service):
    user = auth_service.reconcile_federated_user(db, "grace@example.com", "   ")
    assert user.name == "Unknown User"
