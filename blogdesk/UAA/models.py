# blogdesk/UAA/models.py
from sqlmodel import SQLModel, Field, Column
from typing import Optional
from datetime import datetime
import uuid
from pydantic import EmailStr
from sqlalchemy import String

from blogdesk.models.post import utcnow


class Operator(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    email: EmailStr = Field(sa_column=Column(String, unique=True, index=True, nullable=False))
    display_name: str
    hashed_password: str
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow)
    last_login: Optional[datetime] = None
