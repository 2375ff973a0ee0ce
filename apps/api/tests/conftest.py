"""
Test configuration and fixtures.

Provides:
- Per-test in-memory SQLite database (app code commits freely)
- Organization / lab / user / study factories
- UserSession helpers for service-level tests
- HTTPX AsyncClient with session cookie and CSRF header
"""
import os
import uuid
from dataclasses import dataclass
from typing import AsyncGenerator, Callable, Generator

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("TESTING", "1")
os.environ.setdefault("JWT_SECRET", "test-secret-with-enough-length-for-hs256")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from radflow.core.deps import COOKIE_NAME, get_db
from radflow.core.exceptions import DownstreamUnavailable, NotFound
from radflow.core.identifiers import new_study_external_id
from radflow.core.security import create_session_token
from radflow.db.base import Base
from radflow.db.enums import Role
from radflow.db.models import DoctorProfile, Lab, Organization, Patient, Study, User
from radflow.main import app
from radflow.schemas.auth import UserSession
from radflow.services.workflow_status_service import reset_workflow


# =============================================================================
# Database
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh schema per test; services commit and roll back as in production."""
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


# =============================================================================
# Tenancy
# =============================================================================

@pytest.fixture(scope="function")
def test_org(db: Session) -> Organization:
    org = Organization(identifier="ORGA", name="Alpha Imaging")
    db.add(org)
    db.commit()
    return org


@pytest.fixture(scope="function")
def other_org(db: Session) -> Organization:
    org = Organization(identifier="ORGB", name="Beta Diagnostics")
    db.add(org)
    db.commit()
    return org


@pytest.fixture(scope="function")
def lab(db: Session, test_org: Organization) -> Lab:
    lab = Lab(
        organization_id=test_org.id,
        identifier="LAB1",
        name="Central Lab",
        require_report_verification=False,
    )
    db.add(lab)
    db.commit()
    return lab


@pytest.fixture(scope="function")
def make_user(db: Session, test_org: Organization) -> Callable[..., User]:
    """Create a user; clinicians get a profile when ``requires_verification`` is given."""

    def _make(
        role: Role,
        org: Organization | None = None,
        full_name: str | None = None,
        requires_verification: bool | None = None,
    ) -> User:
        org = test_org if org is None else org
        user = User(
            organization_id=org.id if role != Role.SUPER_ADMIN else None,
            organization_identifier=org.identifier if role != Role.SUPER_ADMIN else None,
            email=f"{role.value}-{uuid.uuid4().hex[:8]}@test.com",
            full_name=full_name or f"{role.value.replace('_', ' ').title()} User",
            role=role.value,
        )
        db.add(user)
        db.flush()
        if requires_verification is not None:
            db.add(DoctorProfile(
                user_id=user.id,
                organization_id=user.organization_id,
                require_report_verification=requires_verification,
            ))
        db.commit()
        return user

    return _make


@pytest.fixture(scope="function")
def doctor(make_user) -> User:
    """Radiologist who does not require verification."""
    return make_user(Role.RADIOLOGIST, full_name="Jane Doe", requires_verification=False)


@pytest.fixture(scope="function")
def admin(make_user) -> User:
    return make_user(Role.ADMIN, full_name="Alice Admin")


@pytest.fixture(scope="function")
def verifier(make_user) -> User:
    return make_user(Role.VERIFIER, full_name="Victor Verifier")


def session_for(user: User) -> UserSession:
    """Acting-user context for a user row."""
    return UserSession(
        user_id=user.id,
        org_id=user.organization_id,
        organization_identifier=user.organization_identifier,
        role=Role(user.role),
        email=user.email,
        full_name=user.full_name,
    )


# =============================================================================
# Studies
# =============================================================================

@pytest.fixture(scope="function")
def make_study(db: Session, test_org: Organization, lab: Lab) -> Callable[..., Study]:
    """Create a patient + study in ``org`` (default: test_org / lab)."""

    def _make(org: Organization | None = None, study_lab: Lab | None = None, **overrides) -> Study:
        org = test_org if org is None else org
        study_lab = lab if study_lab is None and org.id == test_org.id else study_lab
        patient_external_id = overrides.pop("patient_external_id", f"P-{uuid.uuid4().hex[:6]}")
        patient = Patient(
            organization_id=org.id,
            organization_identifier=org.identifier,
            patient_external_id=patient_external_id,
            full_name="John Smith",
            age="45Y",
            gender="M",
        )
        db.add(patient)
        db.flush()

        fields = dict(
            external_id=new_study_external_id(org.identifier, study_lab.identifier if study_lab else None),
            organization_id=org.id,
            organization_identifier=org.identifier,
            source_lab_id=study_lab.id if study_lab else None,
            patient_id=patient.id,
            patient_external_id=patient_external_id,
            patient_name="John Smith",
            patient_age="45Y",
            patient_gender="M",
            modality="CT",
            study_description="CT CHEST",
            series_count=3,
            instance_count=240,
            clinical_history="Persistent cough",
            referring_physician={"name": "Dr. Referrer", "institution": "City Clinic"},
        )
        fields.update(overrides)
        study = Study(**fields)
        reset_workflow(study)
        db.add(study)
        db.commit()
        return study

    return _make


# =============================================================================
# Auth + client
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user: User
    token: str
    cookie_name: str = COOKIE_NAME


def auth_for(user: User) -> TestAuth:
    token = create_session_token(
        user_id=user.id,
        org_id=user.organization_id,
        role=user.role,
        token_version=user.token_version,
    )
    return TestAuth(user=user, token=token)


@pytest.fixture(scope="function")
def client_for(db: Session):
    """Factory for authenticated AsyncClients (JWT cookie + CSRF header)."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    def _make(user: User | None = None, csrf: bool = True) -> AsyncClient:
        cookies = {}
        if user is not None:
            auth = auth_for(user)
            cookies[auth.cookie_name] = auth.token
        headers = {"X-Requested-With": "XMLHttpRequest"} if csrf else {}
        return AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            cookies=cookies,
            headers=headers,
        )

    yield _make
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def doctor_client(client_for, doctor: User) -> AsyncGenerator[AsyncClient, None]:
    async with client_for(doctor) as c:
        yield c


# =============================================================================
# Blob store
# =============================================================================

class FakeBlobStore:
    """In-memory blob store; copies of keys containing ``fail_on`` fail."""

    key = "fake"

    def __init__(self, fail_on: str | None = None, fail_with: Exception | None = None):
        self.blobs: dict[str, bytes] = {}
        self.fail_on = fail_on
        self.fail_with = fail_with or DownstreamUnavailable("Document copy failed")
        self.deleted: list[str] = []

    def put(self, storage_key, data, content_type, metadata=None):
        self.blobs[storage_key] = data

    def get(self, storage_key):
        if storage_key not in self.blobs:
            raise NotFound("Document not found")
        return self.blobs[storage_key]

    def delete(self, storage_key):
        self.deleted.append(storage_key)
        self.blobs.pop(storage_key, None)

    def copy(self, source_key, dest_key, metadata=None):
        if self.fail_on and self.fail_on in source_key:
            raise self.fail_with
        self.blobs[dest_key] = self.get(source_key)

    def presigned_url(self, storage_key, disposition="download", ttl_seconds=None):
        return f"https://blobs.test/{storage_key}?disposition={disposition}"


@pytest.fixture(scope="function")
def make_store() -> Callable[..., FakeBlobStore]:
    return FakeBlobStore


@pytest.fixture(scope="function")
def as_user() -> Callable[[User], UserSession]:
    """Build the acting-user context for a user row."""
    return session_for
