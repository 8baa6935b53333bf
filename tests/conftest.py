import os
import sys
from pathlib import Path

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import Session, sessionmaker

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

TEST_DATABASE_URL = "sqlite://"
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)
os.environ.setdefault("VERIFY_MODULE_SCHEMAS", "false")

from schema_admin.database import Base, get_db  # noqa: E402
from schema_admin.main import app  # noqa: E402
from schema_admin.models import Module, User, UserPermission  # noqa: E402
from schema_admin.services.module_state import MemoryModuleStateStore  # noqa: E402


def _create_testing_engine():
    return create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )


def _create_test_sessionmaker(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture(scope="session")
def engine():
    engine = _create_testing_engine()
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Session, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    connection = engine.connect()

    TestingSessionLocal = _create_test_sessionmaker(connection)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        connection.close()


@pytest.fixture()
def admin_user(db_session: Session) -> User:
    user = User(first_name="Root", surname="Admin", email="root@example.com", role="admin", password="x")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture()
def standard_user(db_session: Session) -> User:
    user = User(first_name="Sam", surname="Standard", email="sam@example.com", role="standard", password="x")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture()
def modules(db_session: Session) -> dict[str, Module]:
    records = {
        "users": Module(link="users", title="Users", icon="bi-people", enabled=True, item_order=10),
        "audits": Module(link="audits", title="Audits", icon="bi-journal-text", enabled=True, item_order=20),
    }
    db_session.add_all(records.values())
    db_session.commit()
    return records


@pytest.fixture()
def grant(db_session: Session):
    def _grant(user: User, module: Module, **modes: bool) -> UserPermission:
        permission = UserPermission(user_id=user.id, module_id=module.id, **modes)
        db_session.add(permission)
        db_session.commit()
        return permission

    return _grant


@pytest.fixture()
def state_store() -> MemoryModuleStateStore:
    return MemoryModuleStateStore()


class PrefixedTestClient(TestClient):
    api_prefix = "/api"

    def request(self, method: str, url: str, *args, **kwargs):  # type: ignore[override]
        if url.startswith("/"):
            url = f"{self.api_prefix}{url}"
        return super().request(method, url, *args, **kwargs)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    client = PrefixedTestClient(app)
    try:
        yield client
    finally:
        app.dependency_overrides.pop(get_db, None)
