"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from models.base import Base, AuthenticationType, ScheduleFrequency, ImportState, utcnow
from models.import_configuration import ImportConfiguration
import models.import_execution_history  # noqa: F401
from typing import AsyncGenerator

# In-memory database shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Session factory bound to the test engine"""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def make_config():
    """Build an unsaved ImportConfiguration with sensible defaults"""

    def _make(**overrides) -> ImportConfiguration:
        values = dict(
            name="Products feed",
            target_source_id="prod",
            target_content_type="Product",
            api_url="https://api.example.com/products",
            http_method="GET",
            auth_type=AuthenticationType.NONE,
            field_mappings=[
                {"source_path": "name", "target_property": "Name"},
            ],
            id_field_mapping="id",
            schedule_frequency=ScheduleFrequency.DAILY,
            schedule_interval_value=1,
            state=ImportState.IDLE,
            consecutive_failures=0,
            max_retries=3,
            is_active=True,
            created_at=utcnow(),
        )
        values.update(overrides)
        return ImportConfiguration(**values)

    return _make


@pytest.fixture
def mock_api_data():
    """Mock external API response data"""
    return [
        {
            "id": "api_001",
            "name": "Test Product 1",
            "description": "This is a test product",
            "category": "electronics",
            "price": "99.99",
            "created_at": "2024-01-15T10:00:00Z",
            "tags": ["new", "featured"]
        },
        {
            "id": "api_002",
            "name": "Test Product 2",
            "description": "Another test product",
            "category": "books",
            "price": "19.99",
            "created_at": "2024-01-15T11:00:00Z",
            "tags": ["bestseller"]
        }
    ]


@pytest.fixture
def content_types_response():
    """Types endpoint response containing a Product content type"""
    return {
        "label": "Products",
        "languages": ["en"],
        "propertyTypes": {},
        "contentTypes": {
            "Product": {
                "contentType": ["_Item"],
                "label": "Product",
                "properties": {
                    "Name": {"type": "String", "searchable": True},
                    "Price": {"type": "Float"},
                },
            }
        },
    }
