from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from app.api.errors import to_http_exception
from app.database import get_session
from app.models.post import PostCreate, PostResponse
from app.services.interaction_store import interaction_store

router = APIRouter(prefix="/posts", tags=["posts"])


@router.post("", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_post(
        post: PostCreate,
        session: AsyncSession = Depends(get_session)
):
    try:
        logger.info(f"Creating post {post.id}")
        return await interaction_store.create_post(post, session)
    except Exception as e:
        raise to_http_exception(e, "creating post")


@router.get("/{post_id}", response_model=PostResponse)
async def get_post(
        post_id: int,
        session: AsyncSession = Depends(get_session)
):
    try:
        return await interaction_store.get_post(post_id, session)
    except Exception as e:
        raise to_http_exception(e, f"loading post {post_id}")
