from pydantic import BaseModel
from typing import Optional

class Identity(BaseModel):
    """The caller as vouched for by the identity provider."""
    user_id: str
    display_name: str
    email: Optional[str] = None
    email_verified: bool = False
