from pydantic import BaseModel, EmailStr
from typing import Optional


class UserSyncRequest(BaseModel):
    id: str  # Supabase user ID
    email: EmailStr
    full_name: Optional[str] = None  # From Supabase user metadata


class UserSyncResponse(BaseModel):
    id: int
    email: str
    created: bool
    created_at: Optional[str] = None
