from pydantic import BaseModel
from typing import Optional

class TokenData(BaseModel):
    sub: Optional[str] = None
    username: Optional[str] = None

class Identity(BaseModel):
    """Caller identity as asserted by the host identity provider."""
    user_id: str
    username: str
