import asyncio
import json
from typing import Dict, List, Optional, Set, Tuple

from loguru import logger

from app.client.storage import KeyValueStorage
from app.models.interaction import (
    CommentInteraction,
    Interaction,
    InteractionType,
    interaction_list_adapter,
)
from config import settings

CacheKey = Tuple[str, int]


def _type_value(interaction_type) -> str:
    return InteractionType(interaction_type).value


def _tombstone(interaction_type, target: int) -> str:
    return f"{_type_value(interaction_type)}:{target}"


class LocalInteractionCache:
    """
    Per-user, device-local copy of interaction facts.

    All reads and mutations work on the in-memory index and never wait on
    the network; `persist()` writes the whole record to durable storage.
    Entries are keyed by (type, target) where target is the post id for
    likes/saves and the comment id for comments and comment likes, so
    presence flags can exist at most once and every comment keeps its own
    entry.

    Besides the interactions, the record keeps "pending removals": flags
    the user removed locally whose delete has not been acknowledged yet.
    The reconciler uses them to push the removal instead of restoring the
    flag from the server.
    """

    def __init__(self, user_id: str, storage: KeyValueStorage, key_prefix: Optional[str] = None):
        if not user_id:
            raise ValueError("user_id is required")
        self.user_id = user_id
        self.storage = storage
        self.key = f"{key_prefix or settings.LOCAL_CACHE_KEY_PREFIX}_{user_id}"
        self._entries: Dict[CacheKey, Interaction] = {}
        self._pending_removals: Set[str] = set()
        self._lock = asyncio.Lock()

    async def load(self) -> "LocalInteractionCache":
        """Read the persisted record. Anything unreadable leaves an empty cache."""
        self._entries = {}
        self._pending_removals = set()

        try:
            raw = await self.storage.get(self.key)
        except Exception as e:
            logger.error(f"Local cache for user {self.user_id} unreadable, starting empty: {e}")
            return self

        if not raw:
            return self

        try:
            data = json.loads(raw)
            interactions = interaction_list_adapter.validate_python(data.get("interactions", []))
            pending = [str(t) for t in data.get("pendingRemovals", [])]
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Local cache for user {self.user_id} is corrupt, starting empty: {e}")
            return self

        for interaction in interactions:
            if interaction.user_id != self.user_id:
                logger.warning(f"Dropping cached interaction of user {interaction.user_id} from {self.user_id}'s cache")
                continue
            self._entries[(interaction.type, interaction.target)] = interaction
        self._pending_removals = set(pending)

        logger.info(f"Loaded {len(self._entries)} cached interactions for user {self.user_id}")
        return self

    def dumps(self) -> str:
        return json.dumps({
            "interactions": interaction_list_adapter.dump_python(
                list(self._entries.values()), mode="json", by_alias=True
            ),
            "pendingRemovals": sorted(self._pending_removals),
        })

    async def persist(self) -> bool:
        # serialize inside the lock so the last write always carries the latest state
        async with self._lock:
            try:
                await self.storage.set(self.key, self.dumps())
                return True
            except Exception as e:
                logger.error(f"Failed to persist local cache for user {self.user_id}: {e}")
                return False

    async def clear(self) -> None:
        self._entries = {}
        self._pending_removals = set()
        async with self._lock:
            await self.storage.delete(self.key)

    def has(self, interaction_type, target: int) -> bool:
        return (_type_value(interaction_type), target) in self._entries

    def get(self, interaction_type, target: int) -> Optional[Interaction]:
        return self._entries.get((_type_value(interaction_type), target))

    def is_liked(self, post_id: int) -> bool:
        return self.has(InteractionType.LIKE, post_id)

    def is_saved(self, post_id: int) -> bool:
        return self.has(InteractionType.SAVE, post_id)

    def is_comment_liked(self, comment_id: int) -> bool:
        return self.has(InteractionType.COMMENT_LIKE, comment_id)

    def list_by_type(self, interaction_type) -> List[int]:
        """Post ids for likes/saves, comment ids for comments and comment likes."""
        kind = _type_value(interaction_type)
        return [target for (t, target) in self._entries if t == kind]

    def comments_for_post(self, post_id: int) -> List[CommentInteraction]:
        return [
            i for i in self._entries.values()
            if i.type == InteractionType.COMMENT.value and i.post_id == post_id
        ]

    def all(self) -> List[Interaction]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, interaction: Interaction) -> bool:
        """
        Insert or replace. Flags are unique per (type, target); comments are
        unique per comment id, so each new comment becomes its own entry.
        Returns False when an identical entry was already cached.
        """
        if interaction.user_id != self.user_id:
            raise ValueError(f"interaction of user {interaction.user_id} does not belong to {self.user_id}'s cache")

        key = (interaction.type, interaction.target)
        if self._entries.get(key) == interaction:
            return False
        self._entries[key] = interaction
        self._pending_removals.discard(_tombstone(interaction.type, interaction.target))
        return True

    def remove(self, interaction_type, target: int) -> bool:
        return self._entries.pop((_type_value(interaction_type), target), None) is not None

    def set_comment_like_post(self, comment_id: int, post_id: int) -> bool:
        """Replace the placeholder post id of a comment like once the server knows it."""
        entry = self.get(InteractionType.COMMENT_LIKE, comment_id)
        if entry is None or entry.post_id == post_id:
            return False
        self._entries[(entry.type, comment_id)] = entry.model_copy(update={"post_id": post_id})
        return True

    def mark_pending_removal(self, interaction_type, target: int) -> None:
        self._pending_removals.add(_tombstone(interaction_type, target))

    def clear_pending_removal(self, interaction_type, target: int) -> bool:
        key = _tombstone(interaction_type, target)
        if key in self._pending_removals:
            self._pending_removals.discard(key)
            return True
        return False

    def has_pending_removal(self, interaction_type, target: int) -> bool:
        return _tombstone(interaction_type, target) in self._pending_removals

    def pending_removals(self) -> List[CacheKey]:
        result = []
        for item in sorted(self._pending_removals):
            kind, _, target = item.rpartition(":")
            if not kind or not target.isdigit():
                continue
            result.append((kind, int(target)))
        return result
