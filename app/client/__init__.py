from app.client.api_client import ApiResponse, InteractionApiClient
from app.client.coordinator import CommitResult, PostCounters, ToggleCoordinator
from app.client.local_cache import LocalInteractionCache
from app.client.reconciler import ReconcileReport, SyncReconciler
from app.client.session import InteractionSession
from app.client.storage import (
    KeyValueStorage,
    FileKeyValueStorage,
    RedisKeyValueStorage,
    build_storage,
)

__all__ = [
    "ApiResponse",
    "InteractionApiClient",
    "CommitResult",
    "PostCounters",
    "ToggleCoordinator",
    "LocalInteractionCache",
    "ReconcileReport",
    "SyncReconciler",
    "InteractionSession",
    "KeyValueStorage",
    "FileKeyValueStorage",
    "RedisKeyValueStorage",
    "build_storage",
]
