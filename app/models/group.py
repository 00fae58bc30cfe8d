from datetime import datetime

from beanie import Document
from pydantic import Field


class Group(Document):
    """Training group: coaches (admins) assign workouts to members."""
    name: str
    owner_id: str
    members: list[str] = Field(default_factory=list)
    admins: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "groups"
        indexes = [[("members", 1)]]

    def is_member(self, user_id: str) -> bool:
        return user_id in self.members or user_id in self.admins

    def is_admin(self, user_id: str) -> bool:
        return user_id in self.admins
