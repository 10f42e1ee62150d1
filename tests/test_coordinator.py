import pytest

from app.client.coordinator import ToggleCoordinator
from app.client.local_cache import LocalInteractionCache
from app.models.interaction import InteractionType
from app.services.interaction_store import interaction_store

USER_ID = "user123"


@pytest.fixture
def results():
    return []


@pytest.fixture
def coordinator(cache, api, results):
    return ToggleCoordinator(cache, api, on_result=results.append)


async def test_toggle_returns_new_state_before_commit(coordinator, cache, create_posts, post_counts):
    await create_posts(42)

    assert await coordinator.toggle_like(42) is True
    assert cache.is_liked(42)
    assert coordinator.pending == 1

    [result] = await coordinator.drain()
    assert result.success is True
    assert result.action == "like"
    assert result.likes_count == 1
    assert await post_counts(42) == (1, 0)
    assert coordinator.counters[42].likes_count == 1


async def test_double_toggle_settles_unliked(coordinator, cache, create_posts, post_counts, session):
    await create_posts(42)

    await coordinator.toggle_like(42)
    await coordinator.toggle_like(42)
    await coordinator.drain()

    assert not cache.is_liked(42)
    assert not cache.has_pending_removal(InteractionType.LIKE, 42)
    assert await post_counts(42) == (0, 0)
    snapshot = await interaction_store.snapshot(USER_ID, [42], session)
    assert snapshot.posts[0].is_liked is False


async def test_toggle_persists_before_commit(coordinator, storage, create_posts):
    await create_posts(3)

    await coordinator.toggle_save(3)
    reloaded = await LocalInteractionCache(USER_ID, storage).load()
    await coordinator.drain()

    assert reloaded.is_saved(3)


async def test_failed_commit_keeps_local_state(coordinator, cache, transport, results, create_posts, post_counts):
    await create_posts(42)
    transport.online = False

    assert await coordinator.toggle_like(42) is True
    [result] = await coordinator.drain()

    assert result.success is False
    assert result.action == "like"
    assert "unreachable" in result.error
    assert cache.is_liked(42)
    assert results == [result]
    assert await post_counts(42) == (0, 0)


async def test_failed_unlike_leaves_pending_removal(coordinator, cache, transport, create_posts, post_counts):
    await create_posts(42)
    await coordinator.toggle_like(42)
    await coordinator.drain()
    transport.online = False

    assert await coordinator.toggle_like(42) is False
    [result] = await coordinator.drain()

    assert result.success is False
    assert not cache.is_liked(42)
    assert cache.has_pending_removal(InteractionType.LIKE, 42)
    assert await post_counts(42) == (1, 0)


async def test_rejected_commit_is_reported(coordinator, cache):
    # no such post on the server
    await coordinator.toggle_like(999)
    [result] = await coordinator.drain()

    assert result.success is False
    assert "not found" in result.error
    assert cache.is_liked(999)


async def test_comments_are_created_server_first(coordinator, cache, create_posts, post_counts):
    await create_posts(7)

    first = await coordinator.add_comment(7, "Such a good boy")
    second = await coordinator.add_comment(7, "Such a good boy")

    assert first.success and second.success
    assert first.comment_id != second.comment_id
    assert second.comments_count == 2
    assert sorted(c.comment_id for c in cache.comments_for_post(7)) == sorted([first.comment_id, second.comment_id])
    assert await post_counts(7) == (0, 2)
    assert coordinator.pending == 0


async def test_failed_comment_is_surfaced_and_not_cached(coordinator, cache, transport, results, create_posts):
    await create_posts(7)
    transport.online = False

    result = await coordinator.add_comment(7, "Hello")

    assert result.success is False
    assert result.action == "comment"
    assert cache.comments_for_post(7) == []
    assert results == [result]


async def test_blank_comment_rejected(coordinator, cache, create_posts):
    await create_posts(7)

    result = await coordinator.add_comment(7, "  ")

    assert result.success is False
    assert cache.comments_for_post(7) == []


async def test_delete_comment(coordinator, cache, create_posts, post_counts):
    await create_posts(7)
    created = await coordinator.add_comment(7, "Oops")

    result = await coordinator.delete_comment(created.comment_id)

    assert result.success is True
    assert result.post_id == 7
    assert cache.get(InteractionType.COMMENT, created.comment_id) is None
    assert await post_counts(7) == (0, 0)


async def test_comment_like_placeholder_corrected(coordinator, cache, session, create_posts):
    await create_posts(7)
    created = await interaction_store.create_comment("alice", 7, "Found a home!", session)
    comment_id = created.interaction.comment_id

    assert await coordinator.toggle_comment_like(comment_id) is True
    assert cache.get(InteractionType.COMMENT_LIKE, comment_id).post_id == 0

    [result] = await coordinator.drain()

    assert result.success is True
    assert result.post_id == 7
    assert result.comment_likes_count == 1
    assert cache.get(InteractionType.COMMENT_LIKE, comment_id).post_id == 7

    assert await coordinator.toggle_comment_like(comment_id) is False
    [unliked] = await coordinator.drain()
    assert unliked.action == "comment_unlike"
    assert unliked.comment_likes_count == 0
    assert not cache.has_pending_removal(InteractionType.COMMENT_LIKE, comment_id)


async def test_callback_errors_do_not_break_commits(cache, api, create_posts):
    await create_posts(1)

    def explode(result):
        raise RuntimeError("ui gone")

    coordinator = ToggleCoordinator(cache, api, on_result=explode)
    await coordinator.toggle_like(1)
    [result] = await coordinator.drain()

    assert result.success is True


async def test_drain_with_nothing_pending(coordinator):
    assert await coordinator.drain() == []


async def test_unlike_goes_to_the_recorded_post_type(coordinator, cache, transport, create_posts, post_counts):
    await create_posts(5, post_type="pet")
    await coordinator.toggle_like(5, post_type="pet")
    await coordinator.drain()

    assert await coordinator.toggle_like(5) is False
    [result] = await coordinator.drain()

    assert result.success is True
    assert ("DELETE", "/interactions/pet/5/like") in transport.calls
    assert not cache.has_pending_removal(InteractionType.LIKE, 5)
    assert await post_counts(5) == (0, 0)


async def test_unlike_that_removed_nothing_keeps_tombstone(coordinator, cache, transport, create_posts):
    await create_posts(42)
    transport.online = False
    await coordinator.toggle_like(42)
    await coordinator.drain()
    transport.online = True

    await coordinator.toggle_like(42)
    [result] = await coordinator.drain()

    assert result.success is True
    assert cache.has_pending_removal(InteractionType.LIKE, 42)


async def test_order_locks_released_after_drain(coordinator, create_posts):
    await create_posts(1, 2)

    await coordinator.toggle_like(1)
    await coordinator.toggle_like(1)
    await coordinator.toggle_save(2)
    await coordinator.drain()

    assert coordinator._target_locks == {}
