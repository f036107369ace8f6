import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from recruitment.database import get_db, init_db
from recruitment.main import app
from recruitment.config import settings
from recruitment.models.application import Application
from recruitment.models.job import JobPosting


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture
def tmp_data_dir(tmp_path):
    data_dir = tmp_path / "RecruitmentData"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def test_db(tmp_data_dir):
    db_path = tmp_data_dir / "recruitment.sqlite"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    TestSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    init_db(db_path)

    def override_get_db():
        db = TestSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestSession
    app.dependency_overrides.clear()
    engine.dispose()


@pytest.fixture
def db(test_db):
    session = test_db()
    yield session
    session.close()


@pytest.fixture
def make_job(db):
    """Insert a job posting directly, bypassing the workflow."""

    def _make(status="draft", created_by=1, scheduled_publish_at=None, title="Backend Engineer"):
        now = "2026-01-01T00:00:00Z"
        job = JobPosting(
            uuid=str(uuid.uuid4()),
            title=title,
            status=status,
            scheduled_publish_at=scheduled_publish_at,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        db.add(job)
        db.commit()
        db.refresh(job)
        return job

    return _make


@pytest.fixture
def add_application(db):
    def _add(job_id, status="pending"):
        application = Application(job_posting_id=job_id, status=status, created_at="2026-01-02T00:00:00Z")
        db.add(application)
        db.commit()
        return application

    return _add


@pytest.fixture
def client(tmp_data_dir, test_db):
    original_data_dir = settings.data_dir
    settings.data_dir = tmp_data_dir
    c = TestClient(app)
    yield c
    settings.data_dir = original_data_dir
