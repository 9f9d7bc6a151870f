import uuid
from datetime import datetime
from pydantic import BaseModel, ConfigDict


class UserBase(BaseModel):
    email: str
    display_name: str | None = None
    preferred_locale: str = 'ka'


class UserCreate(UserBase):
    pass


class UserUpdate(BaseModel):
    display_name: str | None = None
    preferred_locale: str | None = None


class User(UserBase):
    id: uuid.UUID
    is_admin: bool
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)
