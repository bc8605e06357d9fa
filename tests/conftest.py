"""
Shared fixtures.

Time is driven by a FrozenClock starting at T0_MS; API tests talk to the
app through httpx's ASGI transport, so no server is started.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from trailkeeper.core.clock import FrozenClock
from trailkeeper.core.config import Config
from trailkeeper.core.db.engine import create_engine_for, create_session_factory, init_models
from trailkeeper.main import create_app
from trailkeeper.modules.draft_trails.sql_store import SqlDraftStore
from trailkeeper.modules.draft_trails.store import JsonFileDraftStore
from tests.credentials import T0_MS

TTL_SECONDS = 7 * 24 * 60 * 60


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(T0_MS)


@pytest.fixture
def data_file(tmp_path):
    return tmp_path / "data" / "draftTrails.json"


@pytest.fixture
def make_config(data_file):
    def _make(**overrides) -> Config:
        settings = {
            "token_secret": "test-secret",
            "store_backend": "file",
            "data_file_path": str(data_file),
            "draft_ttl_seconds": TTL_SECONDS,
        }
        settings.update(overrides)
        return Config(**settings)

    return _make


@pytest.fixture
def file_store(data_file, clock) -> JsonFileDraftStore:
    return JsonFileDraftStore(str(data_file), clock)


@pytest_asyncio.fixture(params=["file", "sql"])
async def store(request, data_file, clock):
    """Every store backend, to check they honor the same contract."""
    if request.param == "file":
        yield JsonFileDraftStore(str(data_file), clock)
        return

    engine = create_engine_for("sqlite+aiosqlite:///:memory:")
    await init_models(engine)
    sql = SqlDraftStore(create_session_factory(engine), clock, engine=engine)
    yield sql
    await sql.close()


@pytest.fixture
def app(make_config, clock):
    return create_app(make_config(), clock)


@pytest_asyncio.fixture
async def client(app):
    """Async httpx client using ASGI transport, no live server needed."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
