import os
import pytest
from contextvars import ContextVar
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Keep the app from reading developer credentials during tests
os.environ.setdefault("PYTEST_RUNNING", "1")
for _var in ("DEV_MODE", "CRON_SECRET", "POSTMARK_WEBHOOK_USERNAME", "POSTMARK_WEBHOOK_PASSWORD"):
    os.environ.pop(_var, None)

USE_POSTGRES = os.getenv("ACADEMY_TEST_POSTGRES") == "1"


def _sqlite_engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN itself.
    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


# Session-wide database: in-memory SQLite by default, a Postgres test container on request
@pytest.fixture(scope="session")
def _engine():
    if USE_POSTGRES:
        from testcontainers.postgres import PostgresContainer
        from alembic import command
        from alembic.config import Config

        image = os.getenv("TEST_POSTGRES_IMAGE", "postgres:16-alpine")
        with PostgresContainer(image) as pg:
            url = pg.get_connection_url()
            # postgresql+psycopg2:// -> postgresql://
            if "+" in url.split("://", 1)[0]:
                url = "postgresql://" + url.split("://", 1)[1]
            os.environ["TEST_DATABASE_URL"] = url
            cfg = Config("alembic.ini")
            cfg.set_main_option("sqlalchemy.url", url)
            command.upgrade(cfg, "head")
            engine = create_engine(url)
            yield engine
            engine.dispose()
        return

    from academy.db import models
    engine = _sqlite_engine()
    models.Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="session")
def _SessionLocal(_engine):
    import academy.db.database as db_mod
    # Workers that open their own sessions share the test database
    db_mod.engine = _engine
    db_mod.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    return sessionmaker(bind=_engine, autoflush=False, autocommit=False, join_transaction_mode="create_savepoint")


_current_session: ContextVar[object] = ContextVar("_current_session", default=None)
# Fallback for threadpool contexts where ContextVar may not propagate
_GLOBAL_SESSION = None


# Per-test transactional session; service commits become savepoint releases
@pytest.fixture
def db_session(_engine, _SessionLocal):
    connection = _engine.connect()
    trans = connection.begin()
    session = _SessionLocal(bind=connection)
    token = _current_session.set(session)
    global _GLOBAL_SESSION
    _GLOBAL_SESSION = session
    try:
        yield session
    finally:
        _current_session.reset(token)
        _GLOBAL_SESSION = None
        try:
            session.close()
        finally:
            trans.rollback()
            connection.close()


@pytest.fixture
def db(db_session):
    return db_session


@pytest.fixture(autouse=True)
def _reset_feature_flags():
    from academy.utils.feature_flags import refresh_feature_flag_cache
    refresh_feature_flag_cache()
    yield
    refresh_feature_flag_cache()


@pytest.fixture(autouse=True)
def _reset_email_services():
    """Provider singletons read env at construction; rebuild them per test."""
    from academy.services.transactional_email_service import reset_email_services_for_tests
    reset_email_services_for_tests()
    yield
    reset_email_services_for_tests()


def _override_get_db():
    session = _current_session.get()
    if session is not None:
        yield session
        return
    if _GLOBAL_SESSION is not None:
        yield _GLOBAL_SESSION
        return
    raise RuntimeError("API test requested a database session without the db_session fixture")


@pytest.fixture
def client(db_session):
    from fastapi.testclient import TestClient
    import academy.db.database as db_module
    from academy.api.main import app

    app.dependency_overrides[db_module.get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(db_module.get_db, None)


ADMIN_EMAIL = "admin@example.com"


@pytest.fixture
def admin_headers(monkeypatch):
    monkeypatch.setenv("ADMIN_EMAILS", ADMIN_EMAIL)
    return {"x-auth-request-email": ADMIN_EMAIL, "x-auth-request-user": "Admin"}


@pytest.fixture
def user_headers():
    return {"x-auth-request-email": "student@example.com", "x-auth-request-user": "Student Example"}
