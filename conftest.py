"""
Fixtures compartidas para los tests de los módulos.

Los tests corren sobre una base SQLite temporal y con el relay de eventos
desactivado; las variables se fijan antes de importar la aplicación.
"""
import os
import tempfile
from decimal import Decimal
from uuid import uuid4

import pytest

_TEST_DIR = tempfile.mkdtemp(prefix="caja-tests-")
os.environ["ENVIRONMENT"] = "test"
os.environ["EVENT_RELAY_ENABLED"] = "false"
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR}/caja_test.db"

from fastapi.testclient import TestClient  # noqa: E402

from app.main import app  # noqa: E402
from app.database.database import Base, SessionLocal, get_db, sync_engine  # noqa: E402
from app.modules.auth.utils import create_access_token  # noqa: E402
from app.modules.cash_sessions.service import CashSessionService  # noqa: E402


@pytest.fixture
def engine():
    Base.metadata.create_all(bind=sync_engine)
    yield sync_engine
    Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture
def db_session(engine):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def session_factory(engine):
    """Fábrica de sesiones independientes (para tests concurrentes)"""
    return SessionLocal


@pytest.fixture
def client(engine):
    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def tenant_id():
    return uuid4()


@pytest.fixture
def user_id():
    return uuid4()


def _headers(tenant_id, role, name):
    token = create_access_token({"sub": str(uuid4()), "user_role": role, "name": name})
    return {"Authorization": f"Bearer {token}", "X-Company-ID": str(tenant_id)}


@pytest.fixture
def admin_headers(tenant_id):
    return _headers(tenant_id, "admin", "Ana Admin")


@pytest.fixture
def cashier_headers(tenant_id):
    return _headers(tenant_id, "cashier", "Carlos Cajero")


@pytest.fixture
def accountant_headers(tenant_id):
    return _headers(tenant_id, "accountant", "Laura Contadora")


@pytest.fixture
def open_session(db_session, tenant_id, user_id):
    """Turno abierto con fondo inicial de 500"""
    return CashSessionService(db_session).open_session(
        tenant_id=tenant_id,
        user_id=user_id,
        initial_float=Decimal("500.00")
    )


@pytest.fixture
def sample_item():
    return {
        "name": "Hamburguesa",
        "quantity": 1,
        "unit_price": "100.00",
        "unit_cost": "40.00",
    }
