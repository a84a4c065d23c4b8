import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

DEFAULT_DATABASE_URL = "sqlite:///./article_insights.db"


def normalize_database_url(url: str) -> str:
    """Supabase/Render hand out postgres:// URLs; SQLAlchemy wants postgresql://."""
    if url.startswith("postgres://"):
        return "postgresql://" + url[10:]
    return url


SQLALCHEMY_DATABASE_URL = normalize_database_url(os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL))

if SQLALCHEMY_DATABASE_URL.startswith("sqlite"):
    # Local development only; FastAPI runs sync endpoints in a threadpool
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
    )
else:
    # Configure connection pooling so concurrent requests don't exhaust connections
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        poolclass=QueuePool,
        pool_size=10,  # Number of connections to maintain persistently
        max_overflow=20,  # Maximum number of connections to create beyond pool_size
        pool_timeout=30,  # Seconds to wait before giving up on getting a connection
        pool_pre_ping=True,  # Verify connections before using them (handles stale connections)
        pool_recycle=3600,  # Recycle connections after 1 hour
        echo=False  # Set to True for SQL query logging
    )
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
