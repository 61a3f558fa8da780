import pytest

from deadly_sync.config import Settings
from deadly_sync.db.database import create_engine, create_session_factory, init_db
from deadly_sync.db.store import RecordStore


@pytest.fixture
async def store(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.sqlite'}", echo=False)
    await init_db(engine)
    yield RecordStore(create_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        work_dir=str(tmp_path / "work"),
        import_batch_size=500,
        max_retry_attempts=2,
        retry_base_delay=0.0,
    )
