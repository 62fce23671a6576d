# blogdesk/models/post.py
from sqlmodel import SQLModel, Field, Column
from typing import Optional
import uuid
from datetime import datetime, timezone
from sqlalchemy import Text


def utcnow() -> datetime:
    # naive UTC, matching what sqlite hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Post(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    title: str
    description: str
    content: str = Field(sa_column=Column(Text, nullable=False))
    image_ref: Optional[str] = Field(default=None)  # public locator from the asset store
    author: str
    author_id: uuid.UUID = Field(foreign_key="operator.id", index=True)
    published: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)


# fields an operator may change after creation
EDITABLE_FIELDS = frozenset({"title", "description", "content", "image_ref", "author", "published"})
REQUIRED_TEXT_FIELDS = ("title", "description", "content", "author")
