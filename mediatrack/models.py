from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, ForeignKey, Integer, UniqueConstraint
from sqlmodel import SQLModel, Field, Relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MediaKind(str, Enum):
    anime = "anime"
    manga = "manga"


class EntryStatus(str, Enum):
    PLAN_TO_WATCH = "PLAN_TO_WATCH"
    PLAN_TO_READ = "PLAN_TO_READ"
    WATCHING = "WATCHING"
    READING = "READING"
    ON_HOLD = "ON_HOLD"
    DROPPED = "DROPPED"
    COMPLETED = "COMPLETED"


# Status vocabulary per kind: (plan, in-progress, others...)
STATUSES: dict[MediaKind, tuple[EntryStatus, ...]] = {
    MediaKind.anime: (
        EntryStatus.PLAN_TO_WATCH,
        EntryStatus.WATCHING,
        EntryStatus.ON_HOLD,
        EntryStatus.DROPPED,
        EntryStatus.COMPLETED,
    ),
    MediaKind.manga: (
        EntryStatus.PLAN_TO_READ,
        EntryStatus.READING,
        EntryStatus.ON_HOLD,
        EntryStatus.DROPPED,
        EntryStatus.COMPLETED,
    ),
}


def plan_status(kind: MediaKind) -> EntryStatus:
    return STATUSES[kind][0]


def in_progress_status(kind: MediaKind) -> EntryStatus:
    return STATUSES[kind][1]


def _user_fk() -> Column:
    return Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    name: Optional[str] = None
    hashed_password: str
    email_verified: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    entries: list["MediaEntry"] = Relationship(
        back_populates="user", sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )
    favorites: list["Favorite"] = Relationship(
        back_populates="user", sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )


class MediaEntry(SQLModel, table=True):
    """One user's relationship to one catalog title.

    ``total_units`` is episodes for anime and chapters for manga;
    ``total_volumes`` only applies to manga.
    """

    __tablename__ = "media_entry"
    __table_args__ = (UniqueConstraint("user_id", "external_id", "media_type"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(sa_column=_user_fk())
    external_id: int = Field(index=True)
    media_type: MediaKind

    title: str
    image_url: Optional[str] = None

    status: EntryStatus
    progress: int = 0
    total_units: Optional[int] = None
    total_volumes: Optional[int] = None
    score: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    user: Optional[User] = Relationship(back_populates="entries")


class Favorite(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "external_id", "media_type"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(sa_column=_user_fk())
    external_id: int = Field(index=True)
    media_type: MediaKind
    # Snapshot taken when the favorite was added; never refreshed
    title: str = ""
    image_url: str = ""
    created_at: datetime = Field(default_factory=utcnow)

    user: Optional[User] = Relationship(back_populates="favorites")


class VerificationToken(SQLModel, table=True):
    __tablename__ = "verification_token"

    id: Optional[int] = Field(default=None, primary_key=True)
    identifier: str = Field(index=True)  # email
    token: str = Field(unique=True, index=True)
    expires: datetime


class PasswordResetToken(SQLModel, table=True):
    __tablename__ = "password_reset_token"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True)
    token: str = Field(unique=True, index=True)
    expires: datetime
