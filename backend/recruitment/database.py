import sqlite3
from pathlib import Path
from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from recruitment.config import settings


class Base(DeclarativeBase):
    pass


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine(db_path: Path | None = None):
    path = db_path or settings.db_path
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


engine = get_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


SCHEMA_SQL = """\
-- ============================================================
-- JOB POSTINGS
-- ============================================================
CREATE TABLE IF NOT EXISTS job_postings (
    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
    uuid                 TEXT NOT NULL UNIQUE,
    title                TEXT NOT NULL,
    description          TEXT,
    location             TEXT,
    application_deadline TEXT,
    status               TEXT NOT NULL DEFAULT 'draft'
                         CHECK(status IN ('draft','published','closed','archived')),
    previous_status      TEXT
                         CHECK(previous_status IN ('draft','published','closed','archived')),
    status_changed_at    TEXT,
    status_changed_by    INTEGER,
    close_reason         TEXT
                         CHECK(close_reason IN ('position_filled','budget_constraints',
                                                'requirements_changed','cancelled')),
    close_notes          TEXT,
    archive_reason       TEXT,
    scheduled_publish_at TEXT,
    published_at         TEXT,
    closed_at            TEXT,
    created_by           INTEGER NOT NULL,
    created_at           TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now')),
    updated_at           TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_job_postings_status ON job_postings(status);
CREATE INDEX IF NOT EXISTS idx_job_postings_scheduled
    ON job_postings(status, scheduled_publish_at);

-- ============================================================
-- STATUS TRANSITIONS (append-only audit trail)
-- ============================================================
CREATE TABLE IF NOT EXISTS job_status_transitions (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    job_posting_id    INTEGER NOT NULL REFERENCES job_postings(id) ON DELETE CASCADE,
    from_status       TEXT NOT NULL
                      CHECK(from_status IN ('draft','published','closed','archived')),
    to_status         TEXT NOT NULL
                      CHECK(to_status IN ('draft','published','closed','archived')),
    transition_reason TEXT,
    transition_data   TEXT,
    created_by        INTEGER NOT NULL,
    created_at        TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_transitions_job ON job_status_transitions(job_posting_id);
CREATE INDEX IF NOT EXISTS idx_transitions_created ON job_status_transitions(created_at);

-- ============================================================
-- APPLICATIONS
-- ============================================================
CREATE TABLE IF NOT EXISTS applications (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    job_posting_id INTEGER NOT NULL REFERENCES job_postings(id) ON DELETE CASCADE,
    status         TEXT NOT NULL DEFAULT 'pending'
                   CHECK(status IN ('pending','under_review','approved','rejected')),
    created_at     TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_applications_job_status ON applications(job_posting_id, status);

-- ============================================================
-- PERMISSIONS
-- ============================================================
CREATE TABLE IF NOT EXISTS user_permissions (
    user_id    INTEGER NOT NULL,
    permission TEXT NOT NULL,
    PRIMARY KEY (user_id, permission)
);
"""


MIGRATIONS = [
    # v0.2: workflow fields on job postings created before the status workflow
    "ALTER TABLE job_postings ADD COLUMN previous_status TEXT",
    "ALTER TABLE job_postings ADD COLUMN status_changed_at TEXT",
    "ALTER TABLE job_postings ADD COLUMN status_changed_by INTEGER",
    "ALTER TABLE job_postings ADD COLUMN close_reason TEXT",
    "ALTER TABLE job_postings ADD COLUMN close_notes TEXT",
    "ALTER TABLE job_postings ADD COLUMN archive_reason TEXT",
    "ALTER TABLE job_postings ADD COLUMN scheduled_publish_at TEXT",
    "ALTER TABLE job_postings ADD COLUMN published_at TEXT",
    "ALTER TABLE job_postings ADD COLUMN closed_at TEXT",
]


def init_db(db_path: Path | None = None):
    path = db_path or settings.db_path
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.executescript(SCHEMA_SQL)
    # Run migrations idempotently (ALTER TABLE fails if the column exists)
    for migration in MIGRATIONS:
        try:
            conn.execute(migration)
            conn.commit()
        except sqlite3.OperationalError:
            pass  # column already exists
    conn.close()
