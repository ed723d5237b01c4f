from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from teleconsult.core.config import settings


def _engine_kwargs() -> dict:
    if not settings.is_postgres:
        return {}
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_recycle": 300,       # Recycle connections every 5 minutes
        "pool_pre_ping": True,     # Validate connections before use
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        # Bound every statement so a stuck query cannot stall a poller tick
        "connect_args": {"options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}"},
    }


engine = create_engine(settings.SQLALCHEMY_DATABASE_URI, echo=False, **_engine_kwargs())

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
