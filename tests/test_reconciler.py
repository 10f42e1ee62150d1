import pytest

from app.client.coordinator import ToggleCoordinator
from app.client.reconciler import SyncReconciler
from app.client.session import InteractionSession
from app.client.api_client import InteractionApiClient
from app.models.interaction import CommentLikeInteraction, InteractionType, LikeInteraction, SaveInteraction
from app.services.interaction_store import interaction_store

USER_ID = "user123"


@pytest.fixture
def reconciler(cache, api):
    return SyncReconciler(cache, api)


async def test_server_flags_are_materialized_without_writes(reconciler, cache, transport, session, create_posts):
    await create_posts(42, 43)
    await interaction_store.create(USER_ID, "post", 42, "like", session)
    await interaction_store.create(USER_ID, "post", 43, "save", session)

    report = await reconciler.reconcile([42, 43])

    assert report.materialized == 2
    assert cache.is_liked(42)
    assert cache.is_saved(43)
    assert not cache.is_liked(43)
    assert transport.writes() == []


async def test_local_flags_are_pushed_not_dropped(reconciler, cache, post_counts, create_posts):
    await create_posts(42)
    cache.add(LikeInteraction(user_id=USER_ID, post_id=42))

    report = await reconciler.reconcile([42])

    assert report.pushed == 1
    assert report.local_mutations == 0
    assert cache.is_liked(42)
    assert await post_counts(42) == (1, 0)


async def test_second_pass_changes_nothing(reconciler, cache, transport, session, create_posts):
    await create_posts(1, 2, 3)
    await interaction_store.create(USER_ID, "post", 1, "like", session)
    await interaction_store.create_comment(USER_ID, 2, "Lovely cat", session)
    cache.add(SaveInteraction(user_id=USER_ID, post_id=3))
    await reconciler.reconcile([1, 2, 3])
    writes = len(transport.writes())

    report = await reconciler.reconcile([1, 2, 3])

    assert report.local_mutations == 0
    assert report.outbound_calls == 0
    assert len(transport.writes()) == writes


async def test_pending_removal_wins_over_server(reconciler, cache, session, post_counts, create_posts):
    await create_posts(42)
    await interaction_store.create(USER_ID, "post", 42, "like", session)
    cache.mark_pending_removal(InteractionType.LIKE, 42)

    report = await reconciler.reconcile([42])

    assert report.removals_pushed == 1
    assert not cache.is_liked(42)
    assert not cache.has_pending_removal(InteractionType.LIKE, 42)
    assert await post_counts(42) == (0, 0)


async def test_pending_removal_cleared_when_server_agrees(reconciler, cache, transport, create_posts):
    await create_posts(42)
    cache.mark_pending_removal(InteractionType.SAVE, 42)

    report = await reconciler.reconcile([42])

    assert report.cleared == 1
    assert not cache.has_pending_removal(InteractionType.SAVE, 42)
    assert transport.writes() == []


async def test_snapshot_failure_leaves_cache_alone(reconciler, cache, transport, create_posts):
    await create_posts(42)
    cache.add(LikeInteraction(user_id=USER_ID, post_id=42))
    transport.online = False

    report = await reconciler.reconcile([42])

    assert report.snapshot_failed is True
    assert cache.is_liked(42)
    assert report.outbound_calls == 0


async def test_empty_post_list_does_nothing(reconciler, transport):
    report = await reconciler.reconcile([])

    assert report.local_mutations == 0
    assert transport.calls == []


async def test_materialized_flag_keeps_post_type(reconciler, cache, session, create_posts):
    await create_posts(5, post_type="pet")
    await interaction_store.create(USER_ID, "pet", 5, "like", session)

    await reconciler.reconcile([5])

    assert cache.get(InteractionType.LIKE, 5).post_type == "pet"


async def test_comments_are_warmed_for_requested_posts(reconciler, cache, session, create_posts):
    await create_posts(7, 8)
    mine = await interaction_store.create_comment(USER_ID, 7, "Is she good with kids?", session)
    await interaction_store.create_comment(USER_ID, 8, "Elsewhere", session)
    theirs = await interaction_store.create_comment("alice", 7, "Yes!", session)
    await interaction_store.create_comment_like(USER_ID, theirs.interaction.comment_id, session)

    await reconciler.reconcile([7])

    assert [c.comment_id for c in cache.comments_for_post(7)] == [mine.interaction.comment_id]
    assert cache.comments_for_post(8) == []
    assert cache.get(InteractionType.COMMENT_LIKE, theirs.interaction.comment_id).post_id == 7


async def test_offline_comment_like_is_pushed_and_corrected(cache, api, transport, session, create_posts):
    await create_posts(7)
    theirs = await interaction_store.create_comment("alice", 7, "Adoption day!", session)
    comment_id = theirs.interaction.comment_id
    coordinator = ToggleCoordinator(cache, api)
    reconciler = SyncReconciler(cache, api)

    transport.online = False
    await coordinator.toggle_comment_like(comment_id)
    await coordinator.drain()
    transport.online = True

    report = await reconciler.reconcile([7])
    again = await reconciler.reconcile([7])

    assert report.pushed == 1
    assert report.corrected == 1
    assert cache.get(InteractionType.COMMENT_LIKE, comment_id).post_id == 7
    assert await interaction_store.comment_likes_count(comment_id, session) == 1
    assert again.local_mutations == 0
    assert again.outbound_calls == 0


async def test_pending_comment_unlike_is_resent(reconciler, cache, session, create_posts):
    await create_posts(7)
    theirs = await interaction_store.create_comment("alice", 7, "Adoption day!", session)
    comment_id = theirs.interaction.comment_id
    await interaction_store.create_comment_like(USER_ID, comment_id, session)
    cache.mark_pending_removal(InteractionType.COMMENT_LIKE, comment_id)

    report = await reconciler.reconcile([7])

    assert report.removals_pushed == 1
    assert not cache.is_comment_liked(comment_id)
    assert await interaction_store.comment_likes_count(comment_id, session) == 0


async def test_comment_likes_outside_requested_posts_are_left_alone(reconciler, cache):
    cache.add(CommentLikeInteraction(user_id=USER_ID, comment_id=555, post_id=9))

    report = await reconciler.reconcile([1])

    assert report.outbound_calls == 0
    assert cache.is_comment_liked(555)


async def test_offline_toggle_survives_restart(storage, api, transport, create_posts, post_counts):
    await create_posts(42)

    first = await InteractionSession.start(USER_ID, storage=storage, api=api)
    transport.online = False
    assert await first.coordinator.toggle_like(42) is True
    await first.close()
    transport.online = True

    second = await InteractionSession.start(USER_ID, post_ids=[42], storage=storage, api=api)

    assert second.cache.is_liked(42)
    assert await post_counts(42) == (1, 0)

    report = await second.refresh([42])
    assert report.local_mutations == 0
    assert report.outbound_calls == 0
    await second.close()


async def test_session_rejects_client_of_other_user(storage, transport):
    api = InteractionApiClient("alice", base_url="http://testserver", transport=transport)
    with pytest.raises(ValueError):
        InteractionSession(USER_ID, storage=storage, api=api)
    await api.aclose()


async def test_session_context_manager_loads_cache(storage, api):
    async with InteractionSession(USER_ID, storage=storage, api=api) as first:
        first.cache.add(LikeInteraction(user_id=USER_ID, post_id=1))
        await first.cache.persist()

    async with InteractionSession(USER_ID, storage=storage, api=api) as second:
        assert second.cache.is_liked(1)


async def test_unlike_of_flag_from_another_device_stays_unliked(reconciler, cache, api, session, create_posts, post_counts):
    await create_posts(7, post_type="pet")
    await interaction_store.create(USER_ID, "pet", 7, "like", session)
    await reconciler.reconcile([7])
    coordinator = ToggleCoordinator(cache, api)

    assert await coordinator.toggle_like(7) is False
    await coordinator.drain()
    assert await post_counts(7) == (0, 0)

    report = await reconciler.reconcile([7])

    assert not cache.is_liked(7)
    assert report.materialized == 0
    assert not cache.has_pending_removal(InteractionType.LIKE, 7)


async def test_unconfirmed_unlike_tombstone_cleared_by_reconcile(reconciler, cache, api, transport, create_posts):
    await create_posts(42)
    coordinator = ToggleCoordinator(cache, api)
    transport.online = False
    await coordinator.toggle_like(42)
    await coordinator.drain()
    transport.online = True
    await coordinator.toggle_like(42)
    await coordinator.drain()

    report = await reconciler.reconcile([42])

    assert report.cleared == 1
    assert not cache.has_pending_removal(InteractionType.LIKE, 42)
    assert not cache.is_liked(42)


async def test_comment_warmup_fetches_only_requested_posts(reconciler, cache, api, session, create_posts):
    await create_posts(7, 8)
    mine = await interaction_store.create_comment(USER_ID, 7, "Here", session)
    await interaction_store.create_comment(USER_ID, 8, "Elsewhere", session)

    fetched = await api.list_my_interactions(post_ids=[7])
    await reconciler.warm_comments([7])

    assert [i.post_id for i in fetched.data.interactions] == [7]
    assert [c.comment_id for c in cache.comments_for_post(7)] == [mine.interaction.comment_id]
    assert cache.comments_for_post(8) == []


async def test_comment_unlike_on_other_post_is_resent_not_dropped(reconciler, cache, session, create_posts):
    await create_posts(7, 8)
    theirs = await interaction_store.create_comment("alice", 8, "Adoption day!", session)
    comment_id = theirs.interaction.comment_id
    await interaction_store.create_comment_like(USER_ID, comment_id, session)
    cache.mark_pending_removal(InteractionType.COMMENT_LIKE, comment_id)

    report = await reconciler.warm_comments([7])

    assert report.removals_pushed == 1
    assert not cache.has_pending_removal(InteractionType.COMMENT_LIKE, comment_id)
    assert await interaction_store.comment_likes_count(comment_id, session) == 0
