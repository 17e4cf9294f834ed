import logging
from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool
from coursehub.core.config import settings

logger = logging.getLogger(__name__)

class Base(DeclarativeBase):
    pass

def _enable_sqlite_foreign_keys(dbapi_conn, _record):
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()

def build_engine(url: str):
    if url.startswith("sqlite"):
        sqlite_engine = create_engine(url, future=True, echo=settings.DATABASE_ECHO,
                                      connect_args={"check_same_thread": False}, poolclass=StaticPool)
        event.listen(sqlite_engine, "connect", _enable_sqlite_foreign_keys)
        return sqlite_engine
    return create_engine(
        url,
        future=True,
        echo=settings.DATABASE_ECHO,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
    )

engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
# exam sessions keep their rows across commits and must not reload them lazily
RegistrySessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, future=True)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db(bind=None):
    """Create tables if they don't exist."""
    # models must be imported so their tables are registered on Base.metadata
    from coursehub.models import orm  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables ensured")
