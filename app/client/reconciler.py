from typing import Iterable, Optional

from loguru import logger
from pydantic import BaseModel

from app.client.api_client import InteractionApiClient
from app.client.local_cache import LocalInteractionCache
from app.models.interaction import (
    UNKNOWN_POST_ID,
    CommentLikeInteraction,
    InteractionType,
    LikeInteraction,
    SaveInteraction,
)


class ReconcileReport(BaseModel):
    materialized: int = 0     # server had it, cache did not
    pushed: int = 0           # cache had it, server did not; create re-sent
    removals_pushed: int = 0  # pending local removal re-sent as delete
    cleared: int = 0          # pending removals the server already agrees with
    corrected: int = 0        # comment like placeholders filled in
    push_failed: int = 0
    snapshot_failed: bool = False

    @property
    def local_mutations(self) -> int:
        return self.materialized + self.cleared + self.corrected

    @property
    def outbound_calls(self) -> int:
        return self.pushed + self.removals_pushed + self.push_failed


class SyncReconciler:
    """
    Merges the authoritative snapshot into the local cache.

    server present, cache absent   -> materialize locally (or re-send a pending removal)
    server absent,  cache present  -> re-send the create; local intent wins
    server absent,  pending removal -> drop the tombstone, both sides agree

    The merge never deletes a cached flag because the server disagrees, and a
    second pass without new actions changes nothing.
    """

    def __init__(self, cache: LocalInteractionCache, api: InteractionApiClient):
        self.cache = cache
        self.api = api

    @property
    def user_id(self) -> str:
        return self.cache.user_id

    async def reconcile(self, post_ids: Iterable[int]) -> ReconcileReport:
        post_ids = sorted(set(post_ids))
        report = ReconcileReport()
        if not post_ids:
            return report

        response = await self.api.fetch_snapshot(post_ids)
        if not response.ok:
            logger.warning(f"Snapshot for user {self.user_id} unavailable, keeping cache as is: {response.error}")
            report.snapshot_failed = True
            return report

        for state in response.data.posts:
            server_flags = {
                InteractionType.LIKE: state.is_liked,
                InteractionType.SAVE: state.is_saved,
            }
            for kind, server_present in server_flags.items():
                await self._merge_flag(kind, state.post_id, state.post_type, server_present, report)

        await self.warm_comments(post_ids, report)

        if report.local_mutations:
            await self.cache.persist()

        logger.info(
            f"Reconciled {len(post_ids)} posts for user {self.user_id}: "
            f"{report.materialized} pulled, {report.pushed + report.removals_pushed} pushed, "
            f"{report.push_failed} failed"
        )
        return report

    async def _merge_flag(self, kind: InteractionType, post_id: int, post_type: str, server_present: bool,
                          report: ReconcileReport) -> None:
        local_present = self.cache.has(kind, post_id)

        if server_present and not local_present:
            if self.cache.has_pending_removal(kind, post_id):
                logger.warning(f"Divergence: {kind.value} on post {post_id} removed locally, re-sending delete")
                response = await self.api.delete_flag(post_id, kind.value, post_type=post_type)
                if response.ok:
                    self.cache.clear_pending_removal(kind, post_id)
                    report.removals_pushed += 1
                    report.cleared += 1
                else:
                    report.push_failed += 1
                return

            logger.warning(f"Divergence: {kind.value} on post {post_id} missing locally, pulling from server")
            model = LikeInteraction if kind == InteractionType.LIKE else SaveInteraction
            self.cache.add(model(user_id=self.user_id, post_id=post_id, post_type=post_type))
            report.materialized += 1

        elif local_present and not server_present:
            logger.warning(f"Divergence: {kind.value} on post {post_id} missing on server, re-sending create")
            entry = self.cache.get(kind, post_id)
            response = await self.api.create_flag(post_id, kind.value, post_type=entry.post_type)
            if response.ok:
                report.pushed += 1
            else:
                report.push_failed += 1

        elif not server_present and self.cache.clear_pending_removal(kind, post_id):
            report.cleared += 1

    async def warm_comments(self, post_ids: Iterable[int], report: Optional[ReconcileReport] = None) -> ReconcileReport:
        """
        Fill the cache with the user's comments and comment likes on the given posts.

        Comments are only ever added here: they are cached after the server
        confirmed them, so there is nothing local to push. Comment likes are
        presence flags and follow the same rules as likes and saves.

        Args:
            post_ids: Posts whose comments should be cached
            report: Report to add counts to; a new one when omitted

        Returns:
            The report
        """
        report = report or ReconcileReport()
        post_ids = set(post_ids)
        if not post_ids:
            return report

        response = await self.api.list_my_interactions(post_ids=sorted(post_ids))
        if not response.ok:
            logger.warning(f"Could not load comments for user {self.user_id}: {response.error}")
            return report

        # only the requested posts come back; placeholder comment likes and
        # comment-like tombstones may belong to other posts
        server_comment_likes = {}
        for interaction in response.data.interactions:
            if interaction.type == InteractionType.COMMENT_LIKE.value:
                server_comment_likes[interaction.comment_id] = interaction
            elif interaction.type == InteractionType.COMMENT.value and interaction.post_id in post_ids:
                if not self.cache.has(InteractionType.COMMENT, interaction.comment_id):
                    self.cache.add(interaction)
                    report.materialized += 1

        for comment_id, interaction in server_comment_likes.items():
            cached = self.cache.get(InteractionType.COMMENT_LIKE, comment_id)
            if cached is not None:
                if self.cache.set_comment_like_post(comment_id, interaction.post_id):
                    report.corrected += 1
            elif self.cache.has_pending_removal(InteractionType.COMMENT_LIKE, comment_id):
                logger.warning(f"Divergence: like on comment {comment_id} removed locally, re-sending delete")
                unliked = await self.api.unlike_comment(comment_id)
                if unliked.ok:
                    self.cache.clear_pending_removal(InteractionType.COMMENT_LIKE, comment_id)
                    report.removals_pushed += 1
                    report.cleared += 1
                else:
                    report.push_failed += 1
            elif interaction.post_id in post_ids:
                self.cache.add(CommentLikeInteraction(
                    user_id=self.user_id, post_id=interaction.post_id, comment_id=comment_id
                ))
                report.materialized += 1

        for comment_id in self.cache.list_by_type(InteractionType.COMMENT_LIKE):
            if comment_id in server_comment_likes:
                continue
            cached = self.cache.get(InteractionType.COMMENT_LIKE, comment_id)
            if cached.post_id != UNKNOWN_POST_ID and cached.post_id not in post_ids:
                continue
            logger.warning(f"Divergence: like on comment {comment_id} missing on server, re-sending create")
            liked = await self.api.like_comment(comment_id)
            if not liked.ok:
                report.push_failed += 1
                continue
            report.pushed += 1
            confirmed = liked.data.interaction
            if confirmed is not None and self.cache.set_comment_like_post(comment_id, confirmed.post_id):
                report.corrected += 1

        for kind, comment_id in self.cache.pending_removals():
            if kind != InteractionType.COMMENT_LIKE.value or comment_id in server_comment_likes:
                continue
            # the comment may sit on a post outside this batch, so ask the server
            unliked = await self.api.unlike_comment(comment_id)
            if not unliked.ok:
                report.push_failed += 1
                continue
            self.cache.clear_pending_removal(InteractionType.COMMENT_LIKE, comment_id)
            report.cleared += 1
            if unliked.data.removed:
                report.removals_pushed += 1

        return report
