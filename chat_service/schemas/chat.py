from pydantic import BaseModel, Field, field_validator
from typing import List, Optional

from chat_service.core.constants import (
    CHAT_ROOM_TITLE_MAX_LENGTH,
    CHAT_ROOM_TITLE_MIN_LENGTH,
    CHAT_ROOM_TOPIC_MAX_LENGTH,
    CHAT_ROOM_TOPIC_MIN_LENGTH,
    INTEREST_TAG_IDS,
    MAX_INTERESTS,
    MESSAGE_MAX_LENGTH,
    MIN_ROOM_INTERESTS,
)
from chat_service.core.utils.text import sanitize_input
from chat_service.schemas.common import CamelModel


class ChatRoom(CamelModel):
    id: str
    title: str
    topic: str
    creator_id: str
    creator_username: str
    participants: List[str] = Field(default_factory=list)
    participant_count: int = 0
    interests: List[str] = Field(default_factory=list)
    is_active: bool = True
    created_at: int
    last_activity: int


class Message(CamelModel):
    id: str
    chat_room_id: str
    user_id: str
    username: str
    content: str
    timestamp: int


class MessageStats(CamelModel):
    total_messages: int
    oldest_message_time: Optional[int] = None
    newest_message_time: Optional[int] = None


class InterestTag(CamelModel):
    id: str
    name: str
    description: str
    color: str
    chat_room_count: int = 0


def validate_interest_ids(v: List[str]) -> List[str]:
    invalid = [i for i in v if i not in INTEREST_TAG_IDS]
    if invalid:
        raise ValueError(f"Invalid interests: {', '.join(invalid)}")
    # dedupe, keep order
    return list(dict.fromkeys(v))


class ChatRoomCreate(BaseModel):
    title: str
    topic: str
    interests: List[str]

    @field_validator('title')
    @classmethod
    def validate_title(cls, v: str) -> str:
        v = v.strip()
        if len(v) < CHAT_ROOM_TITLE_MIN_LENGTH:
            raise ValueError(f'Title too short (min {CHAT_ROOM_TITLE_MIN_LENGTH} characters)')
        if len(v) > CHAT_ROOM_TITLE_MAX_LENGTH:
            raise ValueError(f'Title too long (max {CHAT_ROOM_TITLE_MAX_LENGTH} characters)')
        return v

    @field_validator('topic')
    @classmethod
    def validate_topic(cls, v: str) -> str:
        v = v.strip()
        if len(v) < CHAT_ROOM_TOPIC_MIN_LENGTH:
            raise ValueError(f'Topic too short (min {CHAT_ROOM_TOPIC_MIN_LENGTH} characters)')
        if len(v) > CHAT_ROOM_TOPIC_MAX_LENGTH:
            raise ValueError(f'Topic too long (max {CHAT_ROOM_TOPIC_MAX_LENGTH} characters)')
        return v

    @field_validator('interests')
    @classmethod
    def validate_interests(cls, v: List[str]) -> List[str]:
        v = validate_interest_ids(v)
        if len(v) < MIN_ROOM_INTERESTS:
            raise ValueError('Select at least one interest')
        if len(v) > MAX_INTERESTS:
            raise ValueError(f'Maximum {MAX_INTERESTS} interests allowed')
        return v


class MessageCreate(BaseModel):
    content: str

    @field_validator('content')
    @classmethod
    def validate_content(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('Message cannot be empty')
        if len(v.strip()) > MESSAGE_MAX_LENGTH:
            raise ValueError(f'Message too long (max {MESSAGE_MAX_LENGTH} characters)')
        v = sanitize_input(v, MESSAGE_MAX_LENGTH)
        if not v:
            raise ValueError('Message cannot be empty')
        return v
