MAX_INTERESTS = 5
MIN_ROOM_INTERESTS = 1

MESSAGE_MAX_LENGTH = 500
CHAT_ROOM_TITLE_MIN_LENGTH = 3
CHAT_ROOM_TITLE_MAX_LENGTH = 100
CHAT_ROOM_TOPIC_MIN_LENGTH = 10
CHAT_ROOM_TOPIC_MAX_LENGTH = 200

DEFAULT_ROOM_PAGE_SIZE = 50
MAX_ROOM_PAGE_SIZE = 100
DEFAULT_MESSAGE_PAGE_SIZE = 50
SEARCH_MIN_QUERY_LENGTH = 2
DEFAULT_SEARCH_LIMIT = 20
MAX_SEARCH_LIMIT = 50

INTEREST_TAGS = [
    {"id": "gaming", "name": "Gaming", "description": "Video games and gaming culture", "color": "#FF6B6B"},
    {"id": "technology", "name": "Technology", "description": "Tech news and discussions", "color": "#4ECDC4"},
    {"id": "music", "name": "Music", "description": "All genres and music discussion", "color": "#45B7D1"},
    {"id": "movies", "name": "Movies & TV", "description": "Film and television", "color": "#96CEB4"},
    {"id": "sports", "name": "Sports", "description": "Sports and athletics", "color": "#FFEAA7"},
    {"id": "food", "name": "Food & Cooking", "description": "Recipes and culinary arts", "color": "#DDA0DD"},
    {"id": "travel", "name": "Travel", "description": "Travel experiences and tips", "color": "#98D8C8"},
    {"id": "books", "name": "Books & Reading", "description": "Literature and reading", "color": "#F7DC6F"},
    {"id": "art", "name": "Art & Design", "description": "Visual arts and creativity", "color": "#BB8FCE"},
    {"id": "science", "name": "Science", "description": "Scientific discussions", "color": "#85C1E9"},
    {"id": "fitness", "name": "Fitness & Health", "description": "Health and wellness", "color": "#82E0AA"},
    {"id": "photography", "name": "Photography", "description": "Photo sharing and techniques", "color": "#F8C471"},
]

INTEREST_TAG_IDS = frozenset(tag["id"] for tag in INTEREST_TAGS)

# Real-time channel names
DISCOVERY_CHANNEL = "discovery"

def room_channel(room_id: str) -> str:
    return f"room:{room_id}"

def user_channel(user_id: str) -> str:
    return f"user:{user_id}"
