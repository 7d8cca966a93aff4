from pydantic_settings import BaseSettings
import logging
from logging.handlers import RotatingFileHandler
import os

def setup_logging(log_level: str = "INFO"):
    log_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "..", "logs")
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, "app.log")

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(log_format)
    level = getattr(logging, log_level.upper(), logging.INFO)

    file_handler = RotatingFileHandler(log_file, maxBytes=1000000, backupCount=5)
    file_handler.setFormatter(formatter)
    file_handler.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)

    logging.basicConfig(
        level=level,
        handlers=[file_handler, console_handler]
    )

class Settings(BaseSettings):
    APP_NAME: str = "Interest Chat API"
    REDIS_URL: str = "redis://localhost:6379/0"

    # Host identity provider shares this key to sign bearer tokens
    SECRET_KEY: str = "change-me-to-a-random-secret"
    JWT_EXPIRATION_TIME: int = 60
    JWT_ALGORITHM: str = "HS256"

    ENABLE_RATE_LIMITING: bool = True
    LOG_LEVEL: str = "INFO"

    MESSAGE_HISTORY_LIMIT: int = 100
    MAX_PAGE_SIZE: int = 100
    ROOM_UPDATE_MAX_RETRIES: int = 10

    REALTIME_RECONNECT_BASE_DELAY: float = 1.0
    REALTIME_RECONNECT_MAX_DELAY: float = 30.0
    REALTIME_RECONNECT_MAX_ATTEMPTS: int = 5

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }

settings = Settings()
