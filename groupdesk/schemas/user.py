"""Pydantic schemas for Users and auth."""
from __future__ import annotations
from datetime import datetime
from pydantic import Field

from groupdesk.schemas.common import CamelModel, Envelope


class UserCreate(CamelModel):
    display_name: str = Field(min_length=1, max_length=100)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=255)
    password: str = Field(min_length=8, max_length=128)


class UserLogin(CamelModel):
    email: str
    password: str


class UserOut(CamelModel):
    user_id: str
    display_name: str
    email: str
    created_at: datetime


class TokenOut(Envelope):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class CurrentUserOut(Envelope):
    user: UserOut
