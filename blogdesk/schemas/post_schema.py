# blogdesk/schemas/post_schema.py
from pydantic import BaseModel, ConfigDict
from typing import List, Optional
import uuid
from datetime import datetime


class PostSummary(BaseModel):
    """List shape; leaves out the long-form content."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    description: str
    image_ref: Optional[str]
    author: str
    published: bool
    created_at: datetime


class PostRead(PostSummary):
    content: str
    author_id: uuid.UUID
    updated_at: datetime


class FeedPage(BaseModel):
    items: List[PostSummary]
    page: int
    page_size: int
    page_count: int
    total: int


class PostStatsRead(BaseModel):
    total: int
    published: int
    drafts: int


class MutationResult(BaseModel):
    message: str
    post: Optional[PostRead] = None
