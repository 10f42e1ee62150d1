from typing import Callable, Iterable, Optional

from loguru import logger

from app.client.api_client import InteractionApiClient
from app.client.coordinator import CommitResult, ToggleCoordinator
from app.client.local_cache import LocalInteractionCache
from app.client.reconciler import ReconcileReport, SyncReconciler
from app.client.storage import KeyValueStorage, build_storage


class InteractionSession:
    """
    Everything one signed-in user needs: cache, service client, reconciler
    and coordinator, all bound to the same user id. Switching users means
    closing this session and starting another; two users never share a cache.
    """

    def __init__(
            self,
            user_id: str,
            storage: Optional[KeyValueStorage] = None,
            api: Optional[InteractionApiClient] = None,
            on_result: Optional[Callable[[CommitResult], None]] = None
    ):
        if not user_id:
            raise ValueError("user_id is required")
        self.user_id = user_id
        self._owns_storage = storage is None
        self._owns_api = api is None
        self.storage = storage or build_storage()
        self.api = api or InteractionApiClient(user_id)
        if self.api.user_id != user_id:
            raise ValueError(f"API client is bound to {self.api.user_id}, not {user_id}")

        self.cache = LocalInteractionCache(user_id, self.storage)
        self.reconciler = SyncReconciler(self.cache, self.api)
        self.coordinator = ToggleCoordinator(self.cache, self.api, on_result=on_result)

    @classmethod
    async def start(cls, user_id: str, post_ids: Iterable[int] = (), **kwargs) -> "InteractionSession":
        """Load the cached record and reconcile the posts the first view shows."""
        session = cls(user_id, **kwargs)
        await session.cache.load()
        post_ids = list(post_ids)
        if post_ids:
            await session.refresh(post_ids)
        logger.info(f"Interaction session started for user {user_id}")
        return session

    async def refresh(self, post_ids: Iterable[int]) -> ReconcileReport:
        return await self.reconciler.reconcile(post_ids)

    async def close(self) -> None:
        await self.coordinator.aclose()
        if self._owns_api:
            await self.api.aclose()
        if self._owns_storage:
            await self.storage.close()
        logger.info(f"Interaction session closed for user {self.user_id}")

    async def __aenter__(self) -> "InteractionSession":
        await self.cache.load()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
