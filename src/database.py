import os
import logging
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool
from dotenv import load_dotenv
from uuid import uuid4
from sqlalchemy import (
    JSON, Boolean, Column, ForeignKey, Integer, String,
    func, DateTime,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, relationship

load_dotenv()

logger = logging.getLogger(__name__)

POSTGRES_USER = os.getenv("POSTGRES_USER")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD")
POSTGRES_DB = os.getenv("POSTGRES_DB_URL")


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    if POSTGRES_USER:
        return f"postgresql+asyncpg://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_DB}"
    return "sqlite+aiosqlite:///./badminton.db"


DATABASE_URL = _database_url()


class Base(DeclarativeBase): pass


# JSONB on Postgres, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _engine_options(url: str) -> dict:
    if url.startswith("postgresql+asyncpg"):
        from asyncpg import Connection

        class FixedConnection(Connection):
            def _get_unique_id(self, prefix: str) -> str:
                return f'__asyncpg_{prefix}_{uuid4()}__'

        return {
            "connect_args": {
                "statement_cache_size": 0,
                "prepared_statement_cache_size": 0,
                "connection_class": FixedConnection,
            }
        }
    # aiosqlite connections must not outlive the event loop that opened them
    return {"poolclass": NullPool}


engine = create_async_engine(
    DATABASE_URL,
    echo=False,
    future=True,
    **_engine_options(DATABASE_URL),
)

# Фабрика сессий
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)


async def get_session():
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_models():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database ready at %s", engine.url.render_as_string(hide_password=True))

#ORM

class SessionORM(Base):
    __tablename__ = "sessions"

    id            = Column(String, primary_key=True)
    match_type    = Column(String, nullable=False, default="doubles")   # singles | doubles
    pairing_mode  = Column(String, nullable=False, default="random")    # random | balanced | separate
    court_count   = Column(Integer, nullable=False, default=2)
    multi_court   = Column(Boolean, nullable=False, default=False)
    current_round = Column(Integer, nullable=False, default=0)
    queue         = Column(JSONType, nullable=False, default=list)      # list[str] -- pending match ids
    active        = Column(JSONType, nullable=False, default=list)      # list[str] -- playing match ids
    created_at    = Column(DateTime(timezone=True), server_default=func.now())

    players = relationship(
        "PlayerORM",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="PlayerORM.position",
        lazy="selectin",
    )
    matches = relationship(
        "MatchORM",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="MatchORM.position",
        lazy="selectin",
    )
    rounds = relationship(
        "RoundORM",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="RoundORM.round_number",
        lazy="selectin",
    )


class PlayerORM(Base):
    __tablename__ = "players"

    session_id    = Column(String, ForeignKey("sessions.id", ondelete="CASCADE"), primary_key=True)
    id            = Column(String, primary_key=True)
    position      = Column(Integer, nullable=False, default=0)
    name          = Column(String, nullable=False)
    level         = Column(String, nullable=False, default="beginner")
    match_count   = Column(Integer, nullable=False, default=0)
    wins          = Column(Integer, nullable=False, default=0)
    losses        = Column(Integer, nullable=False, default=0)
    is_playing    = Column(Boolean, nullable=False, default=False)
    is_resting    = Column(Boolean, nullable=False, default=False)
    created_at    = Column(String, nullable=True)

    session = relationship("SessionORM", back_populates="players")


class MatchORM(Base):
    __tablename__ = "matches"

    session_id    = Column(String, ForeignKey("sessions.id", ondelete="CASCADE"), primary_key=True)
    id            = Column(String, primary_key=True)
    position      = Column(Integer, nullable=False, default=0)
    type          = Column(String, nullable=False)
    team1         = Column(JSONType, nullable=False)   # list[str] -- player ids
    team2         = Column(JSONType, nullable=False)
    status        = Column(String, nullable=False, default="pending")
    court         = Column(Integer, nullable=True)
    scores        = Column(JSONType, nullable=True)    # list[[int, int]] per set
    winner        = Column(String, nullable=True)
    round_id      = Column(String, nullable=True)
    round_number  = Column(Integer, nullable=True)
    created_at    = Column(String, nullable=True)
    started_at    = Column(String, nullable=True)
    completed_at  = Column(String, nullable=True)

    session = relationship("SessionORM", back_populates="matches")


class RoundORM(Base):
    __tablename__ = "rounds"

    session_id    = Column(String, ForeignKey("sessions.id", ondelete="CASCADE"), primary_key=True)
    id            = Column(String, primary_key=True)
    round_number  = Column(Integer, nullable=False)
    match_ids     = Column(JSONType, nullable=False, default=list)
    created_at    = Column(String, nullable=True)

    session = relationship("SessionORM", back_populates="rounds")
