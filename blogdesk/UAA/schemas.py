# blogdesk/UAA/schemas.py
from pydantic import BaseModel, EmailStr, Field
import uuid
from datetime import datetime


class OperatorCreate(BaseModel):
    email: EmailStr
    display_name: str = Field(min_length=1)
    password: str


class OperatorLogin(BaseModel):
    email: EmailStr
    password: str


class OperatorRead(BaseModel):
    id: uuid.UUID
    email: EmailStr
    display_name: str
    is_active: bool
    created_at: datetime


class CurrentOperator(BaseModel):
    """What the rest of the app knows about the signed-in operator."""
    id: uuid.UUID
    display_name: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
