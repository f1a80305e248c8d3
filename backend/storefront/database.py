import logging
from sqlalchemy import create_engine, URL
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from storefront.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

# Using URL.create() instead of f-string to prevent password from appearing in stack traces
if settings.DATABASE_URL:
    DATABASE_URL = settings.DATABASE_URL
else:
    DATABASE_URL = URL.create(
        "mysql+pymysql",
        username=settings.DB_USER,
        password=settings.DB_PASSWORD,
        host=settings.DB_HOST,
        port=settings.DB_PORT,
        database=settings.DB_NAME,
        query={"charset": "utf8mb4"}
    )


def build_engine(url):
    """Create an engine; SQLite gets a single shared connection for thread use."""
    if str(url).startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}, "echo": False}
        if str(url) in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(
        url,
        pool_size=5,  # Connections in pool
        max_overflow=10,  # Extra connections when pool full
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=3600,  # Recycle connections every hour
        echo=False,  # Set True for SQL logging
    )


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# Dependency for endpoints
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """
    Initialize database tables
    """
    # Import all models to register them with Base
    from storefront import models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
