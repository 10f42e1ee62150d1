from enum import Enum
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from app.api.errors import to_http_exception
from app.database import get_session
from app.models.interaction import (
    CommentCreate,
    InteractionCounts,
    InteractionList,
    InteractionResult,
    InteractionSnapshot,
)
from app.services.interaction_store import interaction_store

router = APIRouter(prefix="/interactions", tags=["interactions"])

# auth is handled upstream; the gateway forwards the caller's id
UserId = Header(..., alias="X-User-Id")


class PostFlag(str, Enum):
    LIKE = "like"
    SAVE = "save"


# Fixed-segment routes first: /comments/... and /posts/.../comments
# would otherwise be captured by /{post_type}/{post_id}/{flag}.

@router.get("/me", response_model=InteractionList)
async def list_my_interactions(
        user_id: str = UserId,
        post_id: Optional[int] = Query(None, alias="postId"),
        post_ids: Optional[List[int]] = Query(None, alias="postIds"),
        session: AsyncSession = Depends(get_session)
):
    if post_id is not None:
        post_ids = (post_ids or []) + [post_id]
    try:
        return await interaction_store.query_by_user(user_id, session, post_ids=post_ids)
    except Exception as e:
        raise to_http_exception(e, f"listing interactions for {user_id}")


@router.get("/snapshot", response_model=InteractionSnapshot)
async def get_snapshot(
        user_id: str = UserId,
        post_ids: List[int] = Query(..., alias="postIds"),
        session: AsyncSession = Depends(get_session)
):
    try:
        return await interaction_store.snapshot(user_id, post_ids, session)
    except Exception as e:
        raise to_http_exception(e, f"building snapshot for {user_id}")


@router.post("/posts/{post_id}/comments", response_model=InteractionResult, status_code=status.HTTP_201_CREATED)
async def create_comment(
        post_id: int,
        comment: CommentCreate,
        user_id: str = UserId,
        session: AsyncSession = Depends(get_session)
):
    try:
        logger.info(f"User {user_id} commenting on post {post_id}")
        return await interaction_store.create_comment(
            user_id, post_id, comment.content, session, parent_id=comment.parent_id
        )
    except Exception as e:
        raise to_http_exception(e, "creating comment")


@router.get("/posts/{post_id}/comments", response_model=InteractionList)
async def list_comments(
        post_id: int,
        session: AsyncSession = Depends(get_session)
):
    try:
        return await interaction_store.list_comments(post_id, session)
    except Exception as e:
        raise to_http_exception(e, f"listing comments of post {post_id}")


@router.delete("/comments/{comment_id}", response_model=InteractionResult)
async def delete_comment(
        comment_id: int,
        user_id: str = UserId,
        session: AsyncSession = Depends(get_session)
):
    try:
        return await interaction_store.delete_comment(user_id, comment_id, session)
    except Exception as e:
        raise to_http_exception(e, f"deleting comment {comment_id}")


@router.post("/comments/{comment_id}/like", response_model=InteractionResult)
async def like_comment(
        comment_id: int,
        user_id: str = UserId,
        session: AsyncSession = Depends(get_session)
):
    try:
        return await interaction_store.create_comment_like(user_id, comment_id, session)
    except Exception as e:
        raise to_http_exception(e, f"liking comment {comment_id}")


@router.delete("/comments/{comment_id}/like", response_model=InteractionResult)
async def unlike_comment(
        comment_id: int,
        user_id: str = UserId,
        session: AsyncSession = Depends(get_session)
):
    try:
        return await interaction_store.delete_comment_like(user_id, comment_id, session)
    except Exception as e:
        raise to_http_exception(e, f"unliking comment {comment_id}")


@router.post("/{post_type}/{post_id}/{flag}", response_model=InteractionResult)
async def create_flag(
        post_type: str,
        post_id: int,
        flag: PostFlag,
        user_id: str = UserId,
        session: AsyncSession = Depends(get_session)
):
    try:
        return await interaction_store.create(user_id, post_type, post_id, flag.value, session)
    except Exception as e:
        raise to_http_exception(e, f"creating {flag.value} on {post_type} {post_id}")


@router.delete("/{post_type}/{post_id}/{flag}", response_model=InteractionResult)
async def delete_flag(
        post_type: str,
        post_id: int,
        flag: PostFlag,
        user_id: str = UserId,
        session: AsyncSession = Depends(get_session)
):
    try:
        return await interaction_store.delete(user_id, post_type, post_id, flag.value, session)
    except Exception as e:
        raise to_http_exception(e, f"removing {flag.value} on {post_type} {post_id}")


@router.get("/{post_type}/{post_id}", response_model=Union[InteractionCounts, InteractionList])
async def query_post(
        post_type: str,
        post_id: int,
        count_only: bool = Query(False, alias="countOnly"),
        session: AsyncSession = Depends(get_session)
):
    try:
        return await interaction_store.query(post_type, post_id, session, count_only=count_only)
    except Exception as e:
        raise to_http_exception(e, f"querying {post_type} {post_id}")
