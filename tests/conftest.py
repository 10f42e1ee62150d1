import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.client.api_client import InteractionApiClient
from app.client.local_cache import LocalInteractionCache
from app.client.storage import FileKeyValueStorage
from app.database import build_engine, get_session, init_db
from app.main import create_app
from app.models.post import PostCreate
from app.services.interaction_store import interaction_store

USER_ID = "user123"


class SwitchableTransport(httpx.AsyncBaseTransport):
    """ASGI transport that can be taken offline and records every request."""

    def __init__(self, app):
        self.inner = httpx.ASGITransport(app=app)
        self.online = True
        self.calls = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.method, request.url.path))
        if not self.online:
            raise httpx.ConnectError("network unreachable", request=request)
        return await self.inner.handle_async_request(request)

    def writes(self):
        return [c for c in self.calls if c[0] in ("POST", "DELETE")]


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'interactions.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def create_posts(session_factory):
    async def _create(*post_ids, post_type="post"):
        async with session_factory() as s:
            for post_id in post_ids:
                await interaction_store.create_post(
                    PostCreate(id=post_id, author_id="shelter", post_type=post_type), s
                )
    return _create


@pytest.fixture
def post_counts(session_factory):
    async def _counts(post_id):
        async with session_factory() as s:
            post = await interaction_store.get_post(post_id, s)
            return post.likes_count, post.comments_count
    return _counts


@pytest.fixture
def app(session_factory):
    app = create_app(use_lifespan=False)

    async def override_get_session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = override_get_session
    return app


@pytest.fixture
async def http(app):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
        headers={"X-User-Id": USER_ID},
    ) as client:
        yield client


@pytest.fixture
def transport(app):
    return SwitchableTransport(app)


@pytest.fixture
async def api(transport):
    client = InteractionApiClient(USER_ID, base_url="http://testserver", transport=transport)
    yield client
    await client.aclose()


@pytest.fixture
def storage(tmp_path):
    return FileKeyValueStorage(str(tmp_path / "cache"))


@pytest.fixture
async def cache(storage):
    return await LocalInteractionCache(USER_ID, storage).load()
