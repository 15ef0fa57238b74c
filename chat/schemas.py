"""
Records returned by the store's read operations.

They are detached from the ORM so views can serialize them with
``model_dump(mode="json")`` without touching the database again.
"""
from datetime import datetime

from pydantic import BaseModel


class UserOut(BaseModel):
    """A chat member as embedded in chat listings."""

    id: int
    username: str
    created_at: datetime


class ChatOut(BaseModel):
    """A chat with its full member list."""

    id: int
    name: str
    users: list[UserOut]
    created_at: datetime


class MessageOut(BaseModel):
    id: int
    chat: int
    author: int
    text: str
    created_at: datetime
