import asyncio
from contextlib import asynccontextmanager
from typing import Callable, Dict, List, Optional, Set, Tuple

from loguru import logger
from pydantic import BaseModel

from app.client.api_client import ApiResponse, InteractionApiClient
from app.client.local_cache import LocalInteractionCache
from app.models.interaction import (
    UNKNOWN_POST_ID,
    CommentLikeInteraction,
    Interaction,
    InteractionResult,
    InteractionType,
    LikeInteraction,
    SaveInteraction,
)


class CommitResult(BaseModel):
    """Outcome of the network half of a user action."""
    success: bool
    action: str
    post_id: Optional[int] = None
    comment_id: Optional[int] = None
    error: Optional[str] = None
    likes_count: Optional[int] = None
    comments_count: Optional[int] = None
    comment_likes_count: Optional[int] = None
    interaction: Optional[Interaction] = None


class PostCounters(BaseModel):
    likes_count: int
    comments_count: int


class ToggleCoordinator:
    """
    Entry point for UI actions on one user's interactions.

    Toggles flip the local cache first and return the new state right away;
    the matching service call runs as a background task and its outcome is
    reported as a CommitResult. A failed call never rolls the cache back:
    the local state stays as the user's intent until the reconciler or a
    later toggle settles it. Comments are the exception and go to the
    server first, since their id is minted there.
    """

    def __init__(
            self,
            cache: LocalInteractionCache,
            api: InteractionApiClient,
            on_result: Optional[Callable[[CommitResult], None]] = None
    ):
        self.cache = cache
        self.api = api
        self.on_result = on_result
        self.counters: Dict[int, PostCounters] = {}
        self._pending: Set[asyncio.Task] = set()
        # commits for one target go out in the order the user made them;
        # an entry lives only while some commit holds or waits for it
        self._target_locks: Dict[Tuple[str, int], Tuple[asyncio.Lock, int]] = {}

    @property
    def user_id(self) -> str:
        return self.cache.user_id

    async def toggle_like(self, post_id: int, post_type: str = "post") -> bool:
        return await self._toggle_post_flag(InteractionType.LIKE, post_id, post_type)

    async def toggle_save(self, post_id: int, post_type: str = "post") -> bool:
        return await self._toggle_post_flag(InteractionType.SAVE, post_id, post_type)

    async def toggle_comment_like(self, comment_id: int) -> bool:
        was_liked = self.cache.is_comment_liked(comment_id)
        if was_liked:
            self.cache.remove(InteractionType.COMMENT_LIKE, comment_id)
            self.cache.mark_pending_removal(InteractionType.COMMENT_LIKE, comment_id)
        else:
            # owning post is filled in from the server's answer
            self.cache.add(CommentLikeInteraction(
                user_id=self.user_id, comment_id=comment_id, post_id=UNKNOWN_POST_ID
            ))
        await self.cache.persist()

        self._schedule(self._commit_comment_like(comment_id, present=not was_liked))
        return not was_liked

    async def _toggle_post_flag(self, kind: InteractionType, post_id: int, post_type: str) -> bool:
        existing = self.cache.get(kind, post_id)
        was_present = existing is not None
        if was_present:
            # the delete must name the post the flag was recorded on
            post_type = existing.post_type
            self.cache.remove(kind, post_id)
            self.cache.mark_pending_removal(kind, post_id)
        else:
            model = LikeInteraction if kind == InteractionType.LIKE else SaveInteraction
            self.cache.add(model(user_id=self.user_id, post_id=post_id, post_type=post_type))
        await self.cache.persist()

        self._schedule(self._commit_post_flag(kind, post_id, post_type, present=not was_present))
        return not was_present

    async def add_comment(self, post_id: int, content: str, parent_id: Optional[int] = None) -> CommitResult:
        """Server first; only a confirmed comment is cached. Failure is returned, not retried."""
        response = await self.api.create_comment(post_id, content, parent_id=parent_id)
        if not response.ok or response.data is None or response.data.interaction is None:
            result = CommitResult(
                success=False, action="comment", post_id=post_id,
                error=response.error or "comment was not created",
            )
            logger.warning(f"Comment by {self.user_id} on post {post_id} failed: {result.error}")
            self._emit(result)
            return result

        comment = response.data.interaction
        self.cache.add(comment)
        await self.cache.persist()

        result = self._result_from(response.data, "comment", post_id=post_id, comment_id=comment.comment_id)
        result.interaction = comment
        logger.info(f"Comment {comment.comment_id} by {self.user_id} cached for post {post_id}")
        self._emit(result)
        return result

    async def delete_comment(self, comment_id: int) -> CommitResult:
        response = await self.api.delete_comment(comment_id)
        if not response.ok:
            result = CommitResult(success=False, action="delete_comment", comment_id=comment_id, error=response.error)
            self._emit(result)
            return result

        existing = self.cache.get(InteractionType.COMMENT, comment_id)
        self.cache.remove(InteractionType.COMMENT, comment_id)
        await self.cache.persist()

        result = self._result_from(
            response.data, "delete_comment",
            post_id=existing.post_id if existing else None, comment_id=comment_id,
        )
        self._emit(result)
        return result

    async def _commit_post_flag(self, kind: InteractionType, post_id: int, post_type: str, present: bool) -> CommitResult:
        action = kind.value if present else f"un{kind.value}"
        async with self._in_order(kind.value, post_id):
            if present:
                response = await self.api.create_flag(post_id, kind.value, post_type=post_type)
            else:
                response = await self.api.delete_flag(post_id, kind.value, post_type=post_type)

        if not response.ok:
            return self._failed(action, response, post_id=post_id)

        # a delete that matched nothing leaves the tombstone for the reconciler
        if not present and response.data.removed and not self.cache.has(kind, post_id):
            if self.cache.clear_pending_removal(kind, post_id):
                await self.cache.persist()

        result = self._result_from(response.data, action, post_id=post_id)
        self._emit(result)
        return result

    async def _commit_comment_like(self, comment_id: int, present: bool) -> CommitResult:
        action = "comment_like" if present else "comment_unlike"
        async with self._in_order(InteractionType.COMMENT_LIKE.value, comment_id):
            if present:
                response = await self.api.like_comment(comment_id)
            else:
                response = await self.api.unlike_comment(comment_id)

        if not response.ok:
            return self._failed(action, response, comment_id=comment_id)

        post_id = None
        changed = False
        if present:
            confirmed = response.data.interaction
            if confirmed is not None:
                post_id = confirmed.post_id
                changed = self.cache.set_comment_like_post(comment_id, post_id)
        elif response.data.removed and not self.cache.is_comment_liked(comment_id):
            changed = self.cache.clear_pending_removal(InteractionType.COMMENT_LIKE, comment_id)
        if changed:
            await self.cache.persist()

        result = self._result_from(response.data, action, post_id=post_id, comment_id=comment_id)
        self._emit(result)
        return result

    def _failed(self, action: str, response: ApiResponse, post_id: Optional[int] = None,
                comment_id: Optional[int] = None) -> CommitResult:
        target = f"post {post_id}" if post_id is not None else f"comment {comment_id}"
        logger.warning(f"{action} on {target} not confirmed for user {self.user_id}, keeping local state: {response.error}")
        result = CommitResult(
            success=False, action=action, post_id=post_id, comment_id=comment_id, error=response.error
        )
        self._emit(result)
        return result

    def _result_from(self, data: Optional[InteractionResult], action: str, post_id: Optional[int] = None,
                     comment_id: Optional[int] = None) -> CommitResult:
        result = CommitResult(success=True, action=action, post_id=post_id, comment_id=comment_id)
        if data is not None:
            result.likes_count = data.likes_count
            result.comments_count = data.comments_count
            result.comment_likes_count = data.comment_likes_count
        if post_id is not None and result.likes_count is not None and result.comments_count is not None:
            self.counters[post_id] = PostCounters(
                likes_count=result.likes_count, comments_count=result.comments_count
            )
        return result

    def _emit(self, result: CommitResult) -> None:
        if self.on_result is None:
            return
        try:
            self.on_result(result)
        except Exception:
            logger.exception(f"on_result callback failed for {result.action}")

    @asynccontextmanager
    async def _in_order(self, kind: str, target: int):
        key = (kind, target)
        lock, users = self._target_locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._target_locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._target_locks[key]
            if users == 1:
                del self._target_locks[key]
            else:
                self._target_locks[key] = (lock, users - 1)

    def _schedule(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> List[CommitResult]:
        """Wait for every in-flight commit, including ones scheduled while waiting."""
        results: List[CommitResult] = []
        seen: Set[asyncio.Task] = set()
        while True:
            tasks = [t for t in self._pending if t not in seen]
            if not tasks:
                return results
            results.extend(await asyncio.gather(*tasks))
            seen.update(tasks)

    async def aclose(self) -> None:
        await self.drain()
