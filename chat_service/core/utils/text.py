import re
import time
import uuid

_TAG_CHARS = re.compile(r"[<>]")


def generate_id() -> str:
    return uuid.uuid4().hex


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def sanitize_input(value: str, max_length: int = 1000) -> str:
    """Strips surrounding whitespace and angle brackets, then truncates."""
    return _TAG_CHARS.sub("", value.strip())[:max_length]
