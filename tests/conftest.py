import os
import tempfile

import pytest

# Point the app at a throwaway data directory before anything imports it
_TEST_DATA_DIR = tempfile.mkdtemp(prefix="photo-session-tests-")
os.environ["DATA_DIR"] = _TEST_DATA_DIR
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TEST_DATA_DIR, 'test.sqlite3')}"
os.environ["ENVIRONMENT"] = "test"


@pytest.fixture(autouse=True, scope="session")
def setup_test_db():
    import asyncio

    # Disable API key auth and remote tagging for tests
    from app.config import settings
    settings.api_key = ""
    settings.openai_api_key = ""

    from app.database import create_tables, async_session
    from app.seed import seed_data

    async def _setup():
        await create_tables()
        async with async_session() as session:
            await seed_data(session)

    asyncio.run(_setup())


@pytest.fixture
def data_dir() -> str:
    return _TEST_DATA_DIR
