from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field


class User(Document):
    uid: Indexed(str, unique=True)  # Firebase auth uid; opaque id used everywhere else
    email: str = ""
    name: str = ""
    role: str = "user"  # "user" | "admin"
    last_login_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
