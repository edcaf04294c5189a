"""
Shared fixtures.

The app reads its settings at import time, so the environment is pointed at a
throwaway SQLite file before anything from filtro_api is imported. Tests seed
rows through a plain synchronous SQLAlchemy session on the same file.
"""

import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="filtro-api-tests-")
DB_PATH = os.path.join(_DB_DIR, "test.db")

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{DB_PATH}"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "warning"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from filtro_api.auth import client_claims, create_token, user_claims  # noqa: E402
from filtro_api.database import Base  # noqa: E402
from filtro_api.main import app  # noqa: E402
from filtro_api.models import AppUser, Client, ClinicalStudy  # noqa: E402
from filtro_api.passwords import hash_secret  # noqa: E402

WEBHOOK_PERMISSION = {"method": "POST", "path": "^/webhooks/filtroclientes$"}


@pytest.fixture()
def sync_engine():
    engine = create_engine(f"sqlite:///{DB_PATH}")
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db_session(sync_engine):
    with Session(sync_engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture()
def api(sync_engine):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def make_client(db_session):
    def _make(
        client_id="acme-webhook",
        secret="s3cret-value",
        scopes=("read", "write"),
        permissions=(WEBHOOK_PERMISSION,),
        is_admin=False,
        status="active",
        company_codes=(),
    ):
        client = Client(
            client_id=client_id,
            secret_hash=hash_secret(secret),
            scopes=list(scopes),
            permissions=[dict(p) for p in permissions],
            is_admin=is_admin,
            status=status,
            company_codes=list(company_codes),
        )
        db_session.add(client)
        db_session.commit()
        return client
    return _make


@pytest.fixture()
def make_user(db_session):
    def _make(
        email="ana@saga.test",
        password="correct-horse",
        role="company_admin",
        company_code="saga",
        external_user_id=None,
        status="active",
    ):
        user = AppUser(
            email=email,
            full_name=email.split("@")[0].title(),
            password_hash=hash_secret(password),
            role=role,
            company_code=company_code,
            external_user_id=external_user_id,
            status=status,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture()
def make_study(db_session):
    def _make(**fields):
        data = {
            "protocolo": "PROTO-1",
            "enfermedad": "Pulmón",
            "subtipo": "Células no pequeñas",
            "fase_protocolo": 2,
            "estado_protocolo": "Reclutando",
            "centros_protocolo": ["saga"],
            "cod_clinical_trials_protocolo": "NCT00000001",
            "url_clinical_trials_protocolo": "https://clinicaltrials.gov/study/NCT00000001",
        }
        data.update(fields)
        study = ClinicalStudy(**data)
        db_session.add(study)
        db_session.commit()
        return study
    return _make


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def client_token(client, scopes=None) -> str:
    token, _ = create_token(client_claims(client, list(client.scopes if scopes is None else scopes)))
    return token


def user_token(user) -> str:
    token, _ = create_token(user_claims(user))
    return token
