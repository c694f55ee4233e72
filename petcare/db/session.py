# petcare/db/session.py
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from petcare.core.config import settings


def build_engine(url: str, echo: bool = False) -> Engine:
    if url.startswith("sqlite"):
        # SQLite connections are shared with FastAPI's threadpool
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            future=True,
        )
    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_recycle=280,
        pool_size=10,
        max_overflow=20,
        future=True,
    )


engine: Engine = build_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)

SessionLocal = sessionmaker(
    autoflush=False,
    bind=engine,
    future=True,
)

