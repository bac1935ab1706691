import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool
from quizcore.base_service import Base
from quizcore.auth.middleware import AuthServices
from quizcore.auth.settings import AuthSettings
from quizcore.auth.store import DEFAULT_ROLES, InMemoryCredentialStore, SqlAlchemyCredentialStore
from quizcore.main import create_app

TEST_KEY = "test-signing-key-that-is-long-enough-for-hs256"


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings():
    # Minimum bcrypt cost keeps the suite fast
    return AuthSettings(
        signing_key=SecretStr(TEST_KEY),
        issuer="quizcore-test",
        audience="quizcore-test-client",
        bcrypt_rounds=4,
    )


@pytest.fixture
def memory_store():
    return InMemoryCredentialStore()


@pytest_asyncio.fixture
async def sql_store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    store = SqlAlchemyCredentialStore(session_factory)
    await store.ensure_roles(DEFAULT_ROLES)
    yield store
    await engine.dispose()


@pytest.fixture
def services(settings, memory_store):
    return AuthServices(settings, memory_store)


@pytest_asyncio.fixture
async def client(services):
    app = create_app(services)
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        yield ac
