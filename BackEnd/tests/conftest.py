"""
SISINVESTIGA - Test Configuration and Fixtures
"""
import os
from typing import Generator

import pytest
from faker import Faker
from fastapi.testclient import TestClient

# Set testing environment before the application modules read it
os.environ['DATABASE_URL'] = 'sqlite:///./test_sisinvestiga.db'
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['RESEND_API_KEY'] = ''

from main import app
from sisinvestiga.core.init_roles import init_roles
from sisinvestiga.core.policy import AuthorizationPolicy
from sisinvestiga.db.database import Base, SessionLocal, engine, get_db
from sisinvestiga.enums.enums import RoleName
from sisinvestiga.models.models import Role, User
from sisinvestiga.schemas.project_schemas import ProjectCreate
from sisinvestiga.services import security_service
from sisinvestiga.services.project_service import ProjectService
from sisinvestiga.services.session_service import SessionService

fake = Faker('es_ES')

TEST_PASSWORD = 'Secreta#2024'


@pytest.fixture(scope='function')
def db_session() -> Generator:
    """Create a fresh database (with base roles) for each test"""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    init_roles(session)
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session) -> Generator:
    """Create test client with database override"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def policy() -> AuthorizationPolicy:
    return AuthorizationPolicy.default()


@pytest.fixture
def make_user(db_session):
    """Factory: create a user directly in the database"""
    def _make_user(role: RoleName = RoleName.investigador, verified: bool = True,
                   active: bool = True, password: str = TEST_PASSWORD, **fields) -> User:
        role_row = db_session.query(Role).filter(Role.name == role.value).one()
        user = User(
            nombre=fields.pop('nombre', fake.first_name()),
            apellido=fields.pop('apellido', fake.last_name()),
            email=fields.pop('email', fake.unique.email()).lower(),
            password_hash=security_service.hash_password(password),
            especializacion=fields.pop('especializacion', fake.job()[:200]),
            responsabilidades=fields.pop('responsabilidades', ['Investigación']),
            role_id=role_row.id,
            is_active=active,
            is_verified=verified,
            **fields
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make_user


@pytest.fixture
def admin_user(make_user) -> User:
    return make_user(RoleName.administrador)


@pytest.fixture
def second_admin(make_user) -> User:
    return make_user(RoleName.administrador)


@pytest.fixture
def investigator(make_user) -> User:
    return make_user()


@pytest.fixture
def other_investigator(make_user) -> User:
    return make_user()


@pytest.fixture
def auth_headers_for(db_session):
    """Factory: open a session for a user and return its Authorization header"""
    def _headers(user: User) -> dict:
        token = SessionService.open_session(user, db_session, '127.0.0.1', 'pytest')
        db_session.commit()
        return {'Authorization': f'Bearer {token}'}
    return _headers


@pytest.fixture
def admin_headers(admin_user, auth_headers_for) -> dict:
    return auth_headers_for(admin_user)


@pytest.fixture
def investigator_headers(investigator, auth_headers_for) -> dict:
    return auth_headers_for(investigator)


@pytest.fixture
def project_payload():
    """Factory: valid project creation payload (camelCase, as sent by clients)"""
    def _payload(**overrides) -> dict:
        data = {
            'nombre': f'Proyecto {fake.unique.word()} {fake.random_int(1, 99999)}',
            'descripcion': fake.paragraph(),
            'objetivos': fake.sentence(),
            'presupuesto': 15000.0,
            'cronograma': {
                'fechaInicio': '2025-01-01T00:00:00',
                'fechaFin': '2025-12-31T00:00:00',
            },
            'hitos': [
                {'nombre': 'Revisión bibliográfica', 'fecha': '2025-03-01T00:00:00', 'entregables': ['Informe']},
            ],
            'recursos': ['Laboratorio'],
        }
        data.update(overrides)
        return data
    return _payload


@pytest.fixture
def make_project(db_session, policy, project_payload):
    """Factory: create a project through the service"""
    def _make_project(creator: User, **overrides):
        data = ProjectCreate.model_validate(project_payload(**overrides))
        return ProjectService(db_session, policy).create(data, creator)
    return _make_project
