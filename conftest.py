import pytest
import os
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

# --- Alembic Imports ---
from alembic.config import Config
from alembic import command
# --- End Alembic Imports ---

# Import app and DB dependency function first
from main import app, get_db

# Import database components needed for setup
from database import Base, build_engine

TEST_DATABASE_URL = "sqlite:///./devconnector-test.db"

test_engine = build_engine(TEST_DATABASE_URL)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create the test database from models and stamp with Alembic head."""
    db_path = TEST_DATABASE_URL.split("///")[-1]
    if os.path.exists(db_path):
        os.unlink(db_path)

    Base.metadata.create_all(bind=test_engine)

    alembic_cfg = Config("alembic.ini")
    alembic_cfg.set_main_option("sqlalchemy.url", TEST_DATABASE_URL)
    command.stamp(alembic_cfg, "head")

    yield  # Tests run here

    test_engine.dispose()
    for path in (db_path, f"{db_path}-wal", f"{db_path}-shm"):
        if os.path.exists(path):
            os.unlink(path)


@pytest.fixture(autouse=True)
def clean_tables(setup_test_database):
    """Empty every table after each test so tests do not see each other's rows."""
    yield
    with test_engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture(scope="function")
def db_session(setup_test_database):
    """Yields a SQLAlchemy session directly from the test factory."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def override_get_db():
    """Point the get_db dependency at the test database, one session per request."""

    def _override_get_db():
        db = TestSessionLocal()
        try:
            yield db
        finally:
            db.close()

    original = app.dependency_overrides.get(get_db)
    app.dependency_overrides[get_db] = _override_get_db

    yield

    if original:
        app.dependency_overrides[get_db] = original
    else:
        del app.dependency_overrides[get_db]


@pytest.fixture(scope="function")
def test_client(override_get_db):
    """Provides a test client configured with our test database session."""
    return TestClient(app)


@pytest.fixture
def register(test_client):
    """Register a user through the API and return the headers that authenticate them."""

    def _register(name="Test User", email="test@example.com", password="secret1"):
        response = test_client.post(
            "/api/users", json={"name": name, "email": email, "password": password}
        )
        assert response.status_code == 200, response.text
        return {"x-auth-token": response.json()["token"]}

    return _register
