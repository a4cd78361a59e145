import logging
import uuid

from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker
from werkzeug.security import generate_password_hash

from config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False, "timeout": settings.db_connect_timeout}}
    return {
        "connect_args": {"connect_timeout": settings.db_connect_timeout},
        "pool_timeout": settings.db_pool_timeout,
        "pool_pre_ping": True,
    }


engine = create_engine(settings.database_url, **_engine_options(settings.database_url))
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()


def new_id() -> str:
    """Opaque 24-character identifier assigned to every stored document."""
    return uuid.uuid4().hex[:24]


# ----------------- Dependencies -----------------
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create missing tables and seed the administrator on an empty accounts table."""
    import models  # noqa: F401  registers the tables on Base.metadata

    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        if db.query(models.Account).count() == 0:
            db.add(models.Account(
                username=settings.admin_username,
                password_hash=generate_password_hash(settings.admin_password),
                is_admin=True,
            ))
            db.commit()
            logger.info(f"Seeded administrator account '{settings.admin_username}'")
    finally:
        db.close()
