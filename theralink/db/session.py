from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from theralink.core import config
DATABASE_URL = config.DATABASE_URL

# SQLite needs this when the same connection is used from FastAPI's threadpool
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
