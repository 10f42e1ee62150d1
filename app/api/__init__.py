from app.api.interactions import router as interactions_router
from app.api.posts import router as posts_router

__all__ = [
    "interactions_router",
    "posts_router",
]
