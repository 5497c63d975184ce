"""Persistence and SQLModel definitions for the kidrewards engine.

The uniqueness constraints declared here are what make awarding and unlocking
safe under concurrency: a second insert for the same (child, badge) or
(child, reward) pair fails inside the database instead of racing in Python.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, UniqueConstraint
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, Session, SQLModel, create_engine

from .config import Settings
from .models import as_utc, utcnow

# ---------------------------------------------------------------------------
# Column types
# ---------------------------------------------------------------------------


class UtcTimestamp(TypeDecorator):
    """Store aware datetimes as naive UTC and hand them back aware."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return as_utc(value).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Database models
# ---------------------------------------------------------------------------


class ChildProfile(SQLModel, table=True):
    child_id: str = Field(primary_key=True)
    total_points: int = 0
    available_points: int = 0
    equipped_avatar: Optional[str] = None
    equipped_theme: Optional[str] = None
    equipped_title: Optional[str] = None
    equipped_frame: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UtcTimestamp)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UtcTimestamp)


class BadgeProgress(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("child_id", "badge_id", name="uq_badgeprogress_child_badge"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    child_id: str = Field(index=True)
    badge_id: str
    current_progress: int = 0
    target_progress: int
    created_at: datetime = Field(default_factory=utcnow, sa_type=UtcTimestamp)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UtcTimestamp)


class ChildBadge(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("child_id", "badge_id", name="uq_childbadge_child_badge"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    child_id: str = Field(index=True)
    badge_id: str
    points_awarded: int = 0
    earned_at: datetime = Field(default_factory=utcnow, sa_type=UtcTimestamp)
    is_new: bool = True
    is_displayed: bool = True
    earned_context: Optional[str] = None  # JSON


class ChildReward(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("child_id", "reward_id", name="uq_childreward_child_reward"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    child_id: str = Field(index=True)
    reward_id: str
    reward_kind: str  # avatar|theme|title|frame
    points_spent: int = 0
    unlocked_at: datetime = Field(default_factory=utcnow, sa_type=UtcTimestamp)
    is_equipped: bool = False


EQUIPPED_COLUMNS = {
    "avatar": "equipped_avatar",
    "theme": "equipped_theme",
    "title": "equipped_title",
    "frame": "equipped_frame",
}


# ---------------------------------------------------------------------------
# Engine and session helpers
# ---------------------------------------------------------------------------
def _is_memory_sqlite(url: str) -> bool:
    return url in {"sqlite://", "sqlite:///:memory:"}


def build_engine(settings: Settings | None = None, *, echo: bool = False) -> Engine:
    settings = settings or Settings.from_env()
    url = settings.database_url
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo)
    connect_args = {"check_same_thread": False, "timeout": settings.sqlite_timeout}
    if _is_memory_sqlite(url):
        return create_engine(url, echo=echo, connect_args=connect_args, poolclass=StaticPool)
    return create_engine(url, echo=echo, connect_args=connect_args)


def create_db_and_tables(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)


def open_session(engine: Engine) -> Session:
    return Session(engine, expire_on_commit=False)


__all__ = [
    "BadgeProgress",
    "ChildBadge",
    "ChildProfile",
    "ChildReward",
    "EQUIPPED_COLUMNS",
    "UtcTimestamp",
    "build_engine",
    "create_db_and_tables",
    "open_session",
]
