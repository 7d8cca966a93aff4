# Redis key layout
ACTIVE_CHAT_ROOMS = "active_chatrooms"

def chat_room(room_id: str) -> str:
    return f"chatroom:{room_id}"

def chat_room_messages(room_id: str) -> str:
    return f"chatroom:{room_id}:messages"

def chat_room_message_data(room_id: str) -> str:
    return f"chatroom:{room_id}:message_data"

def chat_room_message_seq(room_id: str) -> str:
    return f"chatroom:{room_id}:message_seq"

def interest_chat_rooms(tag: str) -> str:
    return f"interests:{tag}"

def user_profile(user_id: str) -> str:
    return f"user:{user_id}:profile"

def user_interests(user_id: str) -> str:
    return f"user:{user_id}:interests"

def user_active_chats(user_id: str) -> str:
    return f"user:{user_id}:active_chats"
