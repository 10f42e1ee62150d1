from app.services.interaction_store import InteractionStore, interaction_store
from app.services.errors import (
    InteractionStoreError,
    PostNotFoundError,
    CommentNotFoundError,
    InvalidCommentError,
    CommentPermissionError,
)

__all__ = [
    "InteractionStore",
    "interaction_store",
    "InteractionStoreError",
    "PostNotFoundError",
    "CommentNotFoundError",
    "InvalidCommentError",
    "CommentPermissionError",
]
