from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

# comment_like entries are cached before the server tells us the owning post
UNKNOWN_POST_ID = 0


class InteractionType(str, Enum):
    LIKE = "like"
    SAVE = "save"
    COMMENT = "comment"
    COMMENT_LIKE = "comment_like"


PRESENCE_FLAG_TYPES = (InteractionType.LIKE, InteractionType.SAVE, InteractionType.COMMENT_LIKE)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InteractionBase(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    user_id: str
    post_id: int
    post_type: str = "post"
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    @property
    def target(self) -> int:
        """Id the interaction is unique on: the post, or the comment for comment kinds."""
        return self.post_id


class LikeInteraction(InteractionBase):
    type: Literal["like"] = "like"


class SaveInteraction(InteractionBase):
    type: Literal["save"] = "save"


class CommentInteraction(InteractionBase):
    type: Literal["comment"] = "comment"
    comment_id: int
    content: str
    parent_id: Optional[int] = None

    @property
    def target(self) -> int:
        return self.comment_id


class CommentLikeInteraction(InteractionBase):
    type: Literal["comment_like"] = "comment_like"
    post_id: int = UNKNOWN_POST_ID
    comment_id: int

    @property
    def target(self) -> int:
        return self.comment_id


Interaction = Annotated[
    Union[LikeInteraction, SaveInteraction, CommentInteraction, CommentLikeInteraction],
    Field(discriminator="type"),
]

interaction_adapter = TypeAdapter(Interaction)
interaction_list_adapter = TypeAdapter(List[Interaction])


def interaction_from_row(row) -> Interaction:
    """Build the matching variant from an `interactions` table row."""
    return interaction_adapter.validate_python({
        "type": row.type,
        "user_id": row.user_id,
        "post_id": row.post_id,
        "post_type": row.post_type,
        "timestamp": row.created_at,
        "comment_id": row.comment_id,
        "content": row.content,
        "parent_id": row.parent_id,
    })


class CommentCreate(CamelModel):
    content: str
    parent_id: Optional[int] = None


class InteractionResult(CamelModel):
    """Outcome of a create/delete call, with the counters it touched"""
    success: bool = True
    created: Optional[bool] = None
    removed: Optional[bool] = None
    interaction: Optional[Interaction] = None
    likes_count: Optional[int] = None
    comments_count: Optional[int] = None
    comment_likes_count: Optional[int] = None


class InteractionCounts(CamelModel):
    post_id: int
    post_type: str = "post"
    likes_count: int = 0
    comments_count: int = 0
    saves_count: int = 0


class InteractionList(CamelModel):
    interactions: List[Interaction] = []
    total_count: int = 0


class PostInteractionState(CamelModel):
    post_id: int
    post_type: str = "post"
    is_liked: bool = False
    is_saved: bool = False
    likes_count: int = 0
    comments_count: int = 0


class InteractionSnapshot(CamelModel):
    """Authoritative per-post view of one user's presence flags"""
    user_id: str
    posts: List[PostInteractionState] = []
