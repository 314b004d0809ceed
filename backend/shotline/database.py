from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from shotline.config import get_settings

settings = get_settings()

database_url = settings.DATABASE_URL

# Configure engine based on database type
connect_args = {}
engine_kwargs = {}

if database_url.startswith("sqlite"):
    # SQLite-specific settings
    connect_args = {"check_same_thread": False}
else:
    # PostgreSQL/Supabase settings
    connect_args = {"connect_timeout": 10}
    engine_kwargs = {
        "pool_size": 5,
        "max_overflow": 10,
    }

engine = create_engine(
    database_url,
    connect_args=connect_args,
    pool_pre_ping=True,  # Verify connections before using
    echo=settings.DB_ECHO,
    **engine_kwargs
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

def init_db(bind=None):
    """Create all tables registered on Base"""
    # Import models so they're registered with Base
    import shotline.models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
