from datetime import datetime
from typing import Iterable, Optional

from loguru import logger
from sqlalchemy import select, update, delete, case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import Post, Interaction
from app.models.interaction import (
    InteractionType,
    InteractionResult,
    InteractionCounts,
    InteractionList,
    InteractionSnapshot,
    PostInteractionState,
    interaction_from_row,
)
from app.models.post import PostCreate, PostResponse
from app.services.errors import (
    PostNotFoundError,
    CommentNotFoundError,
    InvalidCommentError,
    CommentPermissionError,
)

# Post column each interaction type feeds; save and comment_like have none
COUNTER_COLUMNS = {
    InteractionType.LIKE.value: Post.likes_count,
    InteractionType.COMMENT.value: Post.comments_count,
}


def dedupe_key(interaction_type: str, user_id: str, post_id: Optional[int] = None,
               comment_id: Optional[int] = None) -> str:
    """
    Unique key of a presence flag row.

    Post ids are unique across post types, so likes and saves are keyed on
    (type, user, post) and comment likes on (user, comment).
    """
    if interaction_type == InteractionType.COMMENT_LIKE.value:
        return f"comment_like:{user_id}:{comment_id}"
    return f"{interaction_type}:{user_id}:{post_id}"


def _increment(column):
    return {column: column + 1}


def _decrement_floored(column):
    return {column: case((column > 0, column - 1), else_=0)}


class InteractionStore:
    """
    Authoritative interaction store.

    Every write adjusts the post counters in the same transaction as the row
    it inserts or deletes, so `likes_count` / `comments_count` always match
    the rows. Presence flags are deduplicated by the unique `dedupe_key`
    index, which is what keeps concurrent creates from double counting.
    """

    async def create_post(self, post_data: PostCreate, session: AsyncSession) -> PostResponse:
        existing = await session.get(Post, post_data.id)
        if existing is not None:
            logger.warning(f"Post {post_data.id} already exists, skipping")
            return self._post_response(existing)

        post = Post(
            id=post_data.id,
            author_id=post_data.author_id,
            post_type=post_data.post_type,
            created_at=post_data.created_at or datetime.utcnow(),
            likes_count=0,
            comments_count=0,
        )
        session.add(post)
        await session.commit()
        await session.refresh(post)

        logger.info(f"Created post {post.id} ({post.post_type})")
        return self._post_response(post)

    async def get_post(self, post_id: int, session: AsyncSession) -> PostResponse:
        result = await session.execute(
            select(Post).where(Post.id == post_id).execution_options(populate_existing=True)
        )
        post = result.scalar_one_or_none()
        if post is None:
            raise PostNotFoundError(post_id)
        return self._post_response(post)

    async def create(
            self,
            user_id: str,
            post_type: str,
            post_id: int,
            interaction_type: str,
            session: AsyncSession
    ) -> InteractionResult:
        """
        Create a like or save. Idempotent: an existing flag is returned
        unchanged and the counter is left alone.

        Args:
            user_id: Acting user
            post_type: Post type from the request path; the stored row always
                takes the post's own type
            post_id: Target post
            interaction_type: "like" or "save"
            session: Database session

        Returns:
            Result with `created` and the post's current counters
        """
        interaction_type = InteractionType(interaction_type).value
        if interaction_type not in (InteractionType.LIKE.value, InteractionType.SAVE.value):
            raise ValueError(f"{interaction_type} is not a post flag")

        actual_type = await self._require_post(post_id, session)
        if post_type != actual_type:
            logger.debug(f"{interaction_type} on post {post_id} requested as {post_type}, stored as {actual_type}")
        post_type = actual_type

        row, created = await self._insert_flag(
            session,
            lambda: Interaction(
                user_id=user_id,
                post_type=post_type,
                post_id=post_id,
                type=interaction_type,
                dedupe_key=dedupe_key(interaction_type, user_id, post_id),
                created_at=datetime.utcnow(),
            ),
            COUNTER_COLUMNS.get(interaction_type),
        )

        if created:
            logger.info(f"User {user_id} {interaction_type}d {post_type} {post_id}")

        likes, comments = await self._counts(post_id, session)
        return InteractionResult(
            created=created,
            interaction=interaction_from_row(row) if row is not None else None,
            likes_count=likes,
            comments_count=comments,
        )

    async def create_comment_like(self, user_id: str, comment_id: int, session: AsyncSession) -> InteractionResult:
        comment = await self._require_comment(comment_id, session)

        row, created = await self._insert_flag(
            session,
            lambda: Interaction(
                user_id=user_id,
                post_type=comment.post_type,
                post_id=comment.post_id,
                type=InteractionType.COMMENT_LIKE.value,
                comment_id=comment_id,
                dedupe_key=dedupe_key(InteractionType.COMMENT_LIKE.value, user_id, comment_id=comment_id),
                created_at=datetime.utcnow(),
            ),
            None,
        )

        if created:
            logger.info(f"User {user_id} liked comment {comment_id}")

        return InteractionResult(
            created=created,
            interaction=interaction_from_row(row) if row is not None else None,
            comment_likes_count=await self.comment_likes_count(comment_id, session),
        )

    async def create_comment(
            self,
            user_id: str,
            post_id: int,
            content: str,
            session: AsyncSession,
            parent_id: Optional[int] = None
    ) -> InteractionResult:
        """Always inserts a new comment row; comments are never deduplicated."""
        if not content or not content.strip():
            raise InvalidCommentError("comment content is required")

        post_type = await self._require_post(post_id, session)

        # one level of replies only
        if parent_id is not None:
            parent = await self._find_comment(parent_id, session)
            if parent is None or parent.post_id != post_id:
                raise InvalidCommentError("parent comment not found")
            if parent.parent_id is not None:
                raise InvalidCommentError("only one-level replies are allowed")

        row = Interaction(
            user_id=user_id,
            post_type=post_type,
            post_id=post_id,
            type=InteractionType.COMMENT.value,
            content=content.strip(),
            parent_id=parent_id,
            created_at=datetime.utcnow(),
        )
        try:
            session.add(row)
            await session.flush()
            row.comment_id = row.id
            await session.execute(
                update(Post).where(Post.id == post_id).values(_increment(Post.comments_count))
            )
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(f"User {user_id} commented on post {post_id} (comment {row.id})")

        likes, comments = await self._counts(post_id, session)
        return InteractionResult(
            created=True,
            interaction=interaction_from_row(row),
            likes_count=likes,
            comments_count=comments,
        )

    async def delete(
            self,
            user_id: str,
            post_type: str,
            post_id: int,
            interaction_type: str,
            session: AsyncSession
    ) -> InteractionResult:
        """
        Remove a like or save. Deleting a missing flag is a no-op.

        Args:
            user_id: Acting user
            post_type: Post type from the request path, used for logging only
            post_id: Target post
            interaction_type: "like" or "save"
            session: Database session

        Returns:
            Result with `removed` and the post's current counters
        """
        interaction_type = InteractionType(interaction_type).value
        if interaction_type not in (InteractionType.LIKE.value, InteractionType.SAVE.value):
            raise ValueError(f"{interaction_type} is not a post flag")

        removed = await self._delete_flag(
            session,
            dedupe_key(interaction_type, user_id, post_id),
            post_id,
            COUNTER_COLUMNS.get(interaction_type),
        )

        if removed:
            logger.info(f"User {user_id} removed {interaction_type} from {post_type} {post_id}")
        else:
            logger.info(f"No {interaction_type} by {user_id} on {post_type} {post_id}, nothing to remove")

        likes, comments = await self._counts(post_id, session)
        return InteractionResult(removed=removed, likes_count=likes, comments_count=comments)

    async def delete_comment_like(self, user_id: str, comment_id: int, session: AsyncSession) -> InteractionResult:
        removed = await self._delete_flag(
            session,
            dedupe_key(InteractionType.COMMENT_LIKE.value, user_id, comment_id=comment_id),
            None,
            None,
        )
        if removed:
            logger.info(f"User {user_id} unliked comment {comment_id}")

        return InteractionResult(
            removed=removed,
            comment_likes_count=await self.comment_likes_count(comment_id, session),
        )

    async def delete_comment(self, user_id: str, comment_id: int, session: AsyncSession) -> InteractionResult:
        comment = await self._require_comment(comment_id, session)
        if comment.user_id != user_id:
            raise CommentPermissionError("you can delete only your own comments")

        post_id = comment.post_id
        try:
            await session.execute(
                delete(Interaction).where(
                    Interaction.type == InteractionType.COMMENT_LIKE.value,
                    Interaction.comment_id == comment_id,
                )
            )
            result = await session.execute(
                delete(Interaction).where(Interaction.id == comment_id)
            )
            if result.rowcount:
                await session.execute(
                    update(Post).where(Post.id == post_id).values(_decrement_floored(Post.comments_count))
                )
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(f"User {user_id} deleted comment {comment_id} on post {post_id}")

        likes, comments = await self._counts(post_id, session)
        return InteractionResult(removed=bool(result.rowcount), likes_count=likes, comments_count=comments)

    async def query(self, post_type: str, post_id: int, session: AsyncSession, count_only: bool = False):
        """All interactions on a post, or just its counters."""
        if await self._require_post(post_id, session) != post_type:
            raise PostNotFoundError(post_id)

        if count_only:
            likes, comments = await self._counts(post_id, session)
            saves = await session.scalar(
                select(func.count()).select_from(Interaction).where(
                    Interaction.post_type == post_type,
                    Interaction.post_id == post_id,
                    Interaction.type == InteractionType.SAVE.value,
                )
            )
            return InteractionCounts(
                post_id=post_id,
                post_type=post_type,
                likes_count=likes,
                comments_count=comments,
                saves_count=saves or 0,
            )

        result = await session.execute(
            select(Interaction)
            .where(Interaction.post_type == post_type, Interaction.post_id == post_id)
            .order_by(Interaction.created_at, Interaction.id)
        )
        rows = result.scalars().all()
        return InteractionList(
            interactions=[interaction_from_row(r) for r in rows],
            total_count=len(rows),
        )

    async def list_comments(self, post_id: int, session: AsyncSession) -> InteractionList:
        """
        Comments on a post, newest first.

        Args:
            post_id: Post whose comments to list
            session: Database session

        Returns:
            Comments and replies of the post
        """
        await self._require_post(post_id, session)

        result = await session.execute(
            select(Interaction)
            .where(Interaction.post_id == post_id, Interaction.type == InteractionType.COMMENT.value)
            .order_by(Interaction.created_at.desc(), Interaction.id.desc())
        )
        rows = result.scalars().all()
        return InteractionList(
            interactions=[interaction_from_row(r) for r in rows],
            total_count=len(rows),
        )

    async def query_by_user(
            self,
            user_id: str,
            session: AsyncSession,
            post_ids: Optional[Iterable[int]] = None
    ) -> InteractionList:
        """Interactions of a user, optionally limited to some posts."""
        rows = await self._user_rows(user_id, session, sorted(set(post_ids)) if post_ids is not None else None)
        return InteractionList(
            interactions=[interaction_from_row(r) for r in rows],
            total_count=len(rows),
        )

    async def snapshot(self, user_id: str, post_ids: Iterable[int], session: AsyncSession) -> InteractionSnapshot:
        """
        Authoritative {is_liked, is_saved} for each requested post that exists.

        Used by the client reconciler; posts that do not exist are left out
        rather than reported as "not liked".
        """
        post_ids = sorted(set(post_ids))
        if not post_ids:
            return InteractionSnapshot(user_id=user_id)

        result = await session.execute(
            select(Post.id, Post.post_type, Post.likes_count, Post.comments_count).where(Post.id.in_(post_ids))
        )
        posts = {pid: (post_type, likes, comments) for pid, post_type, likes, comments in result.all()}

        flags = {(r.post_id, r.type) for r in await self._user_rows(user_id, session, post_ids)}

        states = [
            PostInteractionState(
                post_id=pid,
                post_type=post_type,
                is_liked=(pid, InteractionType.LIKE.value) in flags,
                is_saved=(pid, InteractionType.SAVE.value) in flags,
                likes_count=likes or 0,
                comments_count=comments or 0,
            )
            for pid, (post_type, likes, comments) in sorted(posts.items())
        ]
        return InteractionSnapshot(user_id=user_id, posts=states)

    async def comment_likes_count(self, comment_id: int, session: AsyncSession) -> int:
        count = await session.scalar(
            select(func.count()).select_from(Interaction).where(
                Interaction.type == InteractionType.COMMENT_LIKE.value,
                Interaction.comment_id == comment_id,
            )
        )
        return count or 0

    async def _insert_flag(self, session: AsyncSession, make_row, counter):
        """
        Insert a presence flag and bump its counter in one transaction.
        Returns (row, created). A unique violation means another writer got
        there first: the existing row is returned and nothing is counted.
        """
        row = make_row()
        try:
            session.add(row)
            await session.flush()
            if counter is not None:
                await session.execute(
                    update(Post).where(Post.id == row.post_id).values(_increment(counter))
                )
            await session.commit()
            return row, True
        except IntegrityError:
            await session.rollback()
        except Exception:
            await session.rollback()
            raise

        result = await session.execute(
            select(Interaction).where(Interaction.dedupe_key == row.dedupe_key)
        )
        return result.scalar_one_or_none(), False

    async def _delete_flag(self, session: AsyncSession, key: str, post_id: Optional[int], counter) -> bool:
        try:
            result = await session.execute(
                delete(Interaction).where(Interaction.dedupe_key == key)
            )
            removed = bool(result.rowcount)
            # only the writer that actually removed the row adjusts the counter
            if removed and counter is not None:
                await session.execute(
                    update(Post).where(Post.id == post_id).values(_decrement_floored(counter))
                )
            await session.commit()
            return removed
        except Exception:
            await session.rollback()
            raise

    async def _counts(self, post_id: int, session: AsyncSession):
        result = await session.execute(
            select(Post.likes_count, Post.comments_count).where(Post.id == post_id)
        )
        row = result.one_or_none()
        if row is None:
            return None, None
        return row[0], row[1]

    async def _require_post(self, post_id: int, session: AsyncSession) -> str:
        """Returns the post type of an existing post."""
        post_type = await session.scalar(select(Post.post_type).where(Post.id == post_id))
        if post_type is None:
            raise PostNotFoundError(post_id)
        return post_type

    async def _find_comment(self, comment_id: int, session: AsyncSession) -> Optional[Interaction]:
        result = await session.execute(
            select(Interaction).where(
                Interaction.id == comment_id,
                Interaction.type == InteractionType.COMMENT.value,
            )
        )
        return result.scalar_one_or_none()

    async def _require_comment(self, comment_id: int, session: AsyncSession) -> Interaction:
        comment = await self._find_comment(comment_id, session)
        if comment is None:
            raise CommentNotFoundError(comment_id)
        return comment

    async def _user_rows(self, user_id: str, session: AsyncSession, post_ids: Optional[list] = None):
        stmt = select(Interaction).where(Interaction.user_id == user_id)
        if post_ids is not None:
            stmt = stmt.where(Interaction.post_id.in_(post_ids))
        result = await session.execute(stmt.order_by(Interaction.created_at, Interaction.id))
        return result.scalars().all()

    @staticmethod
    def _post_response(post: Post) -> PostResponse:
        return PostResponse(
            id=post.id,
            authorId=post.author_id,
            postType=post.post_type,
            createdAt=post.created_at,
            likesCount=post.likes_count,
            commentsCount=post.comments_count,
        )


# Stateless, shared by all requests
interaction_store = InteractionStore()
