"""
Identity and credential manager tests: registration, verification, login
throttling, sessions and password reset
"""
from datetime import datetime, timedelta

import pytest
from faker import Faker

from sisinvestiga.core.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    TooManyRequestsError,
    UnauthorizedError,
)
from sisinvestiga.enums.enums import RoleName
from sisinvestiga.models.models import ActiveSession
from sisinvestiga.schemas.user_schemas import UserCreate
from sisinvestiga.services import security_service
from sisinvestiga.services.auth_service import AuthService
from conftest import TEST_PASSWORD

fake = Faker()


def registration(**overrides) -> UserCreate:
    data = {
        'nombre': fake.first_name(),
        'apellido': fake.last_name(),
        'email': fake.unique.email(),
        'password': TEST_PASSWORD,
        'especializacion': 'Biología',
        'responsabilidades': ['Análisis de datos'],
    }
    data.update(overrides)
    return UserCreate.model_validate(data)


class TestRegister:

    def test_new_user_is_unverified_investigator(self, db_session):
        user = AuthService.register(registration(), db_session)

        assert user.id is not None
        assert user.role_name == RoleName.investigador.value
        assert user.is_active is True
        assert user.is_verified is False
        assert user.verification_token

    def test_only_the_hash_is_stored(self, db_session):
        user = AuthService.register(registration(), db_session)

        assert user.password_hash != TEST_PASSWORD
        assert security_service.verify_password(TEST_PASSWORD, user.password_hash)

    def test_duplicate_email_conflicts(self, db_session):
        AuthService.register(registration(email='ana@example.com'), db_session)

        with pytest.raises(ConflictError) as exc:
            AuthService.register(registration(email='ANA@example.com'), db_session)

        assert exc.value.message == 'El email colocado ya existe.'

    def test_empty_responsibilities_rejected(self, db_session):
        with pytest.raises(BadRequestError):
            AuthService.register(registration(responsabilidades=[]), db_session)

    def test_comma_separated_responsibilities_are_split(self, db_session):
        user = AuthService.register(
            registration(responsabilidades='Docencia, Investigación ,  '), db_session
        )
        assert user.responsabilidades == ['Docencia', 'Investigación']

    def test_weak_password_lists_every_problem(self, db_session):
        with pytest.raises(BadRequestError) as exc:
            AuthService.register(registration(password='corta'), db_session)

        assert len(exc.value.errors) >= 3

    def test_non_admin_cannot_choose_role(self, db_session, investigator):
        data = registration(role_name=RoleName.administrador.value)

        with pytest.raises(ForbiddenError):
            AuthService.register(data, db_session, actor=investigator)

    def test_admin_can_register_an_administrator(self, db_session, admin_user):
        data = registration(role_name=RoleName.administrador.value)

        user = AuthService.register(data, db_session, actor=admin_user)

        assert user.is_admin


class TestVerification:

    def test_verify_then_verify_again_is_idempotent(self, db_session):
        user = AuthService.register(registration(), db_session)
        token = user.verification_token

        already, verified = AuthService.verify_email(token, db_session)
        assert already is False
        assert verified.is_verified is True

        already, verified = AuthService.verify_email(token, db_session)
        assert already is True
        assert verified.id == user.id

    def test_unknown_token_rejected(self, db_session):
        with pytest.raises(BadRequestError):
            AuthService.verify_email('token-inexistente', db_session)

    def test_expired_token_rejected(self, db_session):
        user = AuthService.register(registration(), db_session)
        user.verification_token_expires = datetime.utcnow() - timedelta(minutes=1)
        db_session.commit()

        with pytest.raises(BadRequestError):
            AuthService.verify_email(user.verification_token, db_session)

    def test_reissue_replaces_token(self, db_session):
        user = AuthService.register(registration(), db_session)
        old_token = user.verification_token

        new_token = AuthService.issue_verification_token(user.email, db_session)

        assert new_token and new_token != old_token
        with pytest.raises(BadRequestError):
            AuthService.verify_email(old_token, db_session)

    def test_reissue_for_verified_or_unknown_email_returns_none(self, db_session, investigator):
        assert AuthService.issue_verification_token(investigator.email, db_session) is None
        assert AuthService.issue_verification_token('nadie@example.com', db_session) is None


class TestLogin:

    def test_successful_login_opens_a_session(self, db_session, investigator):
        user, token = AuthService.login(investigator.email, TEST_PASSWORD, db_session)

        payload = security_service.decode_token(token)
        assert user.id == investigator.id
        assert user.last_login is not None
        assert db_session.query(ActiveSession).filter_by(token_jti=payload['jti']).count() == 1

    def test_wrong_password_is_unauthorized(self, db_session, investigator):
        with pytest.raises(UnauthorizedError) as exc:
            AuthService.login(investigator.email, 'Incorrecta#1', db_session)
        assert exc.value.message == 'Credenciales incorrectas'

    def test_unknown_email_is_unauthorized(self, db_session):
        with pytest.raises(UnauthorizedError):
            AuthService.login('nadie@example.com', TEST_PASSWORD, db_session)

    def test_unverified_account_is_forbidden(self, db_session, make_user):
        user = make_user(verified=False)
        with pytest.raises(ForbiddenError):
            AuthService.login(user.email, TEST_PASSWORD, db_session)

    def test_disabled_account_is_forbidden(self, db_session, make_user):
        user = make_user(active=False)
        with pytest.raises(ForbiddenError):
            AuthService.login(user.email, TEST_PASSWORD, db_session)

    def test_throttled_after_repeated_failures(self, db_session, investigator):
        for _ in range(5):
            with pytest.raises(UnauthorizedError):
                AuthService.login(investigator.email, 'Incorrecta#1', db_session)

        with pytest.raises(TooManyRequestsError):
            AuthService.login(investigator.email, TEST_PASSWORD, db_session)


class TestSessions:

    def test_logout_removes_only_that_session(self, db_session, investigator):
        _, first = AuthService.login(investigator.email, TEST_PASSWORD, db_session)
        _, second = AuthService.login(investigator.email, TEST_PASSWORD, db_session)
        first_jti = security_service.decode_token(first)['jti']

        revoked = AuthService.logout(investigator, first_jti, db_session)

        assert revoked == 1
        with pytest.raises(UnauthorizedError):
            AuthService.authenticate_token(first, db_session)
        assert AuthService.authenticate_token(second, db_session).user.id == investigator.id

    def test_logout_all_removes_every_session(self, db_session, investigator):
        tokens = [AuthService.login(investigator.email, TEST_PASSWORD, db_session)[1] for _ in range(3)]

        revoked = AuthService.logout_all(investigator, db_session)

        assert revoked == 3
        for token in tokens:
            with pytest.raises(UnauthorizedError):
                AuthService.authenticate_token(token, db_session)

    def test_missing_token_is_unauthorized(self, db_session):
        with pytest.raises(UnauthorizedError) as exc:
            AuthService.authenticate_token(None, db_session)
        assert exc.value.message == 'Por favor, autentíquese.'


class TestPasswordReset:

    def test_unknown_email_returns_no_token(self, db_session):
        assert AuthService.request_password_reset('nadie@example.com', db_session) is None

    def test_reset_changes_password_and_closes_sessions(self, db_session, investigator):
        _, session_token = AuthService.login(investigator.email, TEST_PASSWORD, db_session)
        reset_token = AuthService.request_password_reset(investigator.email, db_session)

        AuthService.reset_password(reset_token, 'NuevaClave#2025', db_session)

        with pytest.raises(UnauthorizedError):
            AuthService.authenticate_token(session_token, db_session)
        user, _ = AuthService.login(investigator.email, 'NuevaClave#2025', db_session)
        assert user.reset_password_token is None

    def test_reset_token_is_single_use(self, db_session, investigator):
        reset_token = AuthService.request_password_reset(investigator.email, db_session)
        AuthService.reset_password(reset_token, 'NuevaClave#2025', db_session)

        with pytest.raises(BadRequestError):
            AuthService.reset_password(reset_token, 'OtraClave#2026', db_session)

    def test_superseded_reset_token_is_rejected(self, db_session, investigator):
        first = AuthService.request_password_reset(investigator.email, db_session)
        AuthService.request_password_reset(investigator.email, db_session)

        with pytest.raises(BadRequestError):
            AuthService.reset_password(first, 'NuevaClave#2025', db_session)

    def test_session_token_cannot_reset_password(self, db_session, investigator):
        _, session_token = AuthService.login(investigator.email, TEST_PASSWORD, db_session)

        with pytest.raises(BadRequestError):
            AuthService.reset_password(session_token, 'NuevaClave#2025', db_session)
