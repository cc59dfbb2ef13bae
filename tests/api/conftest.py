import pytest
from fastapi.testclient import TestClient

from zmemory.main import app
from zmemory.core.database import get_db
from zmemory.auth import require_user_id


@pytest.fixture
def client(session_factory, user_id):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[require_user_id] = lambda: user_id
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
