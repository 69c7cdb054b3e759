from pydantic import BaseModel
from typing import Optional

class UserIdentity(BaseModel):
    uid: str
    email: str
    display_name: Optional[str] = None

class UserProfile(BaseModel):
    id: str
    email: str
    display_name: Optional[str] = None
