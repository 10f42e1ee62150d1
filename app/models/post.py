from datetime import datetime
from typing import Optional

from app.models.interaction import CamelModel


class PostCreate(CamelModel):
    id: int
    author_id: str
    post_type: str = "post"
    created_at: Optional[datetime] = None


class PostResponse(CamelModel):
    id: int
    author_id: str
    post_type: str
    created_at: datetime
    likes_count: int = 0
    comments_count: int = 0
