from enum import Enum


class Outcome(str, Enum):
    """Expected results of repository mutations; callers map them to errors."""

    SUCCESS = "success"
    # accepted, but the stored state already matched
    UNCHANGED = "unchanged"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
