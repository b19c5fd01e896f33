# backend/artschool/db.py
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from urllib.parse import urlparse, parse_qs
from .config import settings

DATABASE_URL = settings.DATABASE_URL


def _should_use_ssl(url: str) -> bool:
    parsed = urlparse(url)
    q = parse_qs(parsed.query or "")
    if any(v and v[0].lower() == "require" for k, v in q.items() if k == "sslmode"):
        return True
    host = (parsed.hostname or "").lower()
    return "supabase.co" in host or "neon.tech" in host or "railway" in host


def build_engine(url: str, echo: bool = False, **engine_kwargs):
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    elif _should_use_ssl(url):
        connect_args = {"sslmode": "require"}

    eng = create_engine(
        url, echo=echo, future=True, connect_args=connect_args, **engine_kwargs
    )

    if url.startswith("sqlite"):
        # SQLite ignores foreign keys unless asked per connection
        @event.listens_for(eng, "connect")
        def _enable_sqlite_fk(dbapi_conn, _record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return eng


engine = build_engine(DATABASE_URL, echo=settings.DEBUG)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True
)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    """For handlers that outlive the request scope (streamed responses)."""
    return SessionLocal
