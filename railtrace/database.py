"""Database configuration and session management."""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from railtrace import config

# Configure engine based on database type
if config.DATABASE_URL.startswith("sqlite"):
    # SQLite-specific config
    engine = create_engine(
        config.DATABASE_URL,
        connect_args={
            "check_same_thread": False,
            "timeout": config.STORAGE_TIMEOUT_SECONDS,
        }
    )
else:
    # PostgreSQL config (production)
    engine = create_engine(
        config.DATABASE_URL,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=5,
        max_overflow=10,
        connect_args={"connect_timeout": int(config.STORAGE_TIMEOUT_SECONDS)}
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for FastAPI endpoints to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
