import pytest
import os
from datetime import date
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["WEEKEND_DAYS"] = "friday,saturday"

from app.database import Base, get_db
from app.main import app
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

# Sunday: with the Friday/Saturday weekend, TODAY..TODAY+4 are five working days
TODAY = date(2025, 6, 1)

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite defers BEGIN on its own; take over so SAVEPOINTs nest inside the
# per-test outer transaction instead of committing it.
@event.listens_for(engine, "connect")
def _disable_pysqlite_transactions(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create tables once for the whole test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """
    Session bound to an outer transaction that is rolled back after the test.
    Service-level commit/rollback only touch savepoints inside it.
    """
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(scope="function")
def cst(db_session):
    from app.models.department import Department
    department = Department(name="Computer Science & Technology", code="CST", is_active=True)
    db_session.add(department)
    db_session.commit()
    return department


@pytest.fixture(scope="function")
def eee(db_session):
    from app.models.department import Department
    department = Department(name="Electrical & Electronic Engineering", code="EEE", is_active=True)
    db_session.add(department)
    db_session.commit()
    return department


@pytest.fixture(scope="function")
def make_user(db_session):
    """Factory for directory users: make_user(UserRole.INSTRUCTOR, department, annual=21, ...)."""
    from app.models.user import User
    counter = {"n": 0}

    def _make_user(role, department=None, annual=21, reward=0, hire_date=None, is_active=True):
        counter["n"] += 1
        user = User(
            email=f"{role.value}.{counter['n']}@institute.test",
            full_name=f"{role.value.replace('_', ' ').title()} {counter['n']}",
            role=role,
            department_id=department.id if department else None,
            annual_vacation_balance=annual,
            reward_vacation_balance=reward,
            hire_date=hire_date,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make_user


@pytest.fixture(scope="function")
def instructor(make_user, cst):
    from app.models.user import UserRole
    return make_user(UserRole.INSTRUCTOR, cst)


@pytest.fixture(scope="function")
def chief(make_user, cst):
    from app.models.user import UserRole
    return make_user(UserRole.CHIEF_INSTRUCTOR, cst)


@pytest.fixture(scope="function")
def other_chief(make_user, eee):
    from app.models.user import UserRole
    return make_user(UserRole.CHIEF_INSTRUCTOR, eee)


@pytest.fixture(scope="function")
def principal(make_user, cst):
    from app.models.user import UserRole
    return make_user(UserRole.PRINCIPAL, cst)


@pytest.fixture(scope="function")
def registrar(make_user, cst):
    from app.models.user import UserRole
    return make_user(UserRole.REGISTRAR_HEAD, cst)


@pytest.fixture(scope="function")
def service(db_session):
    from app.services.vacation_service import VacationService
    return VacationService(db_session, clock=lambda: TODAY)


@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def auth_headers():
    """Helper fixture building the gateway identity header for a user."""
    def _auth_headers(user):
        return {"X-User-ID": str(user.id)}
    return _auth_headers
