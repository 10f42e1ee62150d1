from app.models.interaction import (
    UNKNOWN_POST_ID,
    PRESENCE_FLAG_TYPES,
    InteractionType,
    Interaction,
    LikeInteraction,
    SaveInteraction,
    CommentInteraction,
    CommentLikeInteraction,
    CommentCreate,
    InteractionResult,
    InteractionCounts,
    InteractionList,
    InteractionSnapshot,
    PostInteractionState,
    interaction_adapter,
    interaction_list_adapter,
    interaction_from_row,
)
from app.models.post import PostCreate, PostResponse

__all__ = [
    "UNKNOWN_POST_ID",
    "PRESENCE_FLAG_TYPES",
    "InteractionType",
    "Interaction",
    "LikeInteraction",
    "SaveInteraction",
    "CommentInteraction",
    "CommentLikeInteraction",
    "CommentCreate",
    "InteractionResult",
    "InteractionCounts",
    "InteractionList",
    "InteractionSnapshot",
    "PostInteractionState",
    "interaction_adapter",
    "interaction_list_adapter",
    "interaction_from_row",
    "PostCreate",
    "PostResponse",
]
