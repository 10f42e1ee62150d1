from app.database.postgres import (
    engine,
    build_engine,
    async_session_factory,
    get_session,
    init_db,
    close_db,
)
from app.database.models import Post, Interaction, Base

__all__ = [
    "engine",
    "build_engine",
    "async_session_factory",
    "get_session",
    "init_db",
    "close_db",
    "Post",
    "Interaction",
    "Base",
]
