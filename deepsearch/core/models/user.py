from pydantic import BaseModel
from typing import Optional
from datetime import datetime

class User(BaseModel):
    id: str
    telegram_id: Optional[int] = None
    username: Optional[str] = None
    full_name: Optional[str] = None
    is_admin: bool = False
    created_at: Optional[datetime] = None
