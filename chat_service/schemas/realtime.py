from enum import Enum
from typing import Optional

from chat_service.schemas.common import CamelModel


class EventType(str, Enum):
    MESSAGE = "message"
    USER_JOINED = "user_joined"
    USER_LEFT = "user_left"
    ROOM_CREATED = "room_created"
    ROOM_DELETED = "room_deleted"


class RealtimeEvent(CamelModel):
    type: EventType
    # message id, set on message events only
    id: Optional[str] = None
    room_id: Optional[str] = None
    user_id: str
    username: str
    content: Optional[str] = None
    timestamp: int

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
