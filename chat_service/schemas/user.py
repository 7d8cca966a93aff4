from pydantic import BaseModel, Field, field_validator
from typing import List

from chat_service.schemas.chat import validate_interest_ids
from chat_service.schemas.common import CamelModel


class UserProfile(CamelModel):
    id: str
    username: str
    interests: List[str] = Field(default_factory=list)
    active_chats: List[str] = Field(default_factory=list)
    created_at: int


class UserStats(CamelModel):
    interest_count: int
    active_chat_count: int
    profile_exists: bool


class InterestsUpdate(BaseModel):
    interests: List[str]

    @field_validator('interests')
    @classmethod
    def validate_interests(cls, v: List[str]) -> List[str]:
        return validate_interest_ids(v)
