import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
)

from database import Base
from ratings import DEFAULT_RATING, RATING_LABELS


def utcnow() -> datetime:
    # SQLite は naive な datetime を返すので、比較をそろえるため naive UTC で持つ
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


_RATING_CHECK = "rating IN ({})".format(", ".join(f"'{r}'" for r in RATING_LABELS))


class Recipe(Base):
    __tablename__ = "recipes"
    __table_args__ = (CheckConstraint(_RATING_CHECK, name="ck_recipes_rating"),)

    id = Column(String(36), primary_key=True, default=new_id)
    url = Column(String(2048), nullable=False, unique=True, index=True)
    title = Column(String(255), nullable=True)
    domain = Column(String(255), nullable=True, index=True)
    memo = Column(Text, nullable=True)
    rating = Column(String(20), nullable=False, default=DEFAULT_RATING)
    image_url = Column(String(2048), nullable=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    date_added = Column(DateTime, nullable=False, default=utcnow, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)


class User(Base):
    """Account table of the earlier multi-user setup; nothing writes to it."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    google_id = Column(String(255), unique=True, nullable=True)
    email = Column(String(255), unique=True, nullable=True)
    name = Column(String(255), nullable=True)
    picture = Column(String(2048), nullable=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
