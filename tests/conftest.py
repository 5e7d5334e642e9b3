import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock, patch
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

# main.py はインポート時にエンジンを作成するが、テストではインメモリDBに差し替える
from main import app, init_database

from vnexplorer import MemoryHistory, SearchPage, Tag, VisualNovel

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    # Patch main.engine so init_database uses our test engine
    with patch("main.engine", engine), patch("main.DB_URL", TEST_DATABASE_URL):
        await init_database()
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(autocommit=False, autoflush=False, bind=test_engine, expire_on_commit=False)


@pytest.fixture(scope="function", autouse=True)
def mock_startup():
    """Keep the real startup hook from touching the on-disk database."""
    with patch("main.init_database", new_callable=AsyncMock):
        yield


@pytest_asyncio.fixture(scope="function")
async def client(session_factory):
    # Patch get_db_session because endpoints call it directly
    with patch("main.get_db_session", side_effect=session_factory):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac


# ---- explorer fixtures ----

TAGS = {
    "g1": Tag(id="g1", name="Romance"),
    "g2": Tag(id="g2", name="Drama"),
    "g3": Tag(id="g3", name="Mystery"),
}


def make_vns(count: int, start: int = 1):
    return [VisualNovel(id=f"v{n}", title=f"Title {n}", votecount=100 - n) for n in range(start, start + count)]


@pytest.fixture
def history():
    return MemoryHistory("/")


@pytest.fixture
def backend():
    mock = MagicMock()

    async def get_tags_by_ids(ids):
        return [TAGS[tag_id] for tag_id in ids if tag_id in TAGS]

    mock.get_tags_by_ids = AsyncMock(side_effect=get_tags_by_ids)
    mock.search_vns = AsyncMock(return_value=SearchPage[VisualNovel](results=make_vns(3), more=False, count=60))
    return mock


@pytest.fixture
def bookmark_store():
    mock = MagicMock()
    mock.get_bookmark_ids = AsyncMock(return_value=[])
    mock.add_bookmark = AsyncMock(return_value=None)
    mock.remove_bookmark = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def tags():
    return dict(TAGS)
