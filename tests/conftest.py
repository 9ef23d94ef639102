"""Shared test fixtures for settings, the movements database, and mocked AWS."""

import uuid
from collections.abc import AsyncGenerator, Callable, Iterator
from datetime import UTC, datetime
from typing import Any

import boto3
import pytest
from moto import mock_aws
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from yard_reports.core.config import Settings
from yard_reports.core.database import create_engine, create_session_factory
from yard_reports.lib.storage import S3ObjectStorage
from yard_reports.models.base import Base
from yard_reports.models.movement import Movement, MovementDamage, Trailer
from yard_reports.services.status_store import StatusStore

TEST_BUCKET = "yard-reports-test"
TEST_REGION = "us-east-1"
TEST_PREFIX = "temp-files/movements/reports"


@pytest.fixture
def settings() -> Settings:
    """Test application settings."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        aws_region=TEST_REGION,
        reports_bucket=TEST_BUCKET,
        reports_queue_backend="memory",
        _env_file=None,
    )  # type: ignore[call-arg]


@pytest.fixture
def aws_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Fake AWS credentials so boto3 never reaches a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)


@pytest.fixture
def s3_client(aws_credentials: None) -> Iterator[Any]:
    """Create a moto-mocked S3 client and bucket."""
    with mock_aws():
        client = boto3.client("s3", region_name=TEST_REGION)
        client.create_bucket(Bucket=TEST_BUCKET)
        yield client


@pytest.fixture
def storage(s3_client: Any) -> S3ObjectStorage:
    """Object storage on the mocked bucket."""
    return S3ObjectStorage(s3_client, TEST_BUCKET, region=TEST_REGION)


@pytest.fixture
def status_store(storage: S3ObjectStorage) -> StatusStore:
    """Status store under the default reports prefix."""
    return StatusStore(storage, TEST_PREFIX)


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an in-memory async SQLite engine for testing."""
    engine = create_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return create_session_factory(async_engine)


@pytest.fixture
async def async_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Create a per-test async session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def add_movement(async_session: AsyncSession) -> Callable[..., Any]:
    """Factory inserting one movement (with its trailer and damages)."""
    trailers: dict[str, Trailer] = {}

    async def _add(
        trailer_number: str = "T1",
        *,
        ts: datetime | None = None,
        type: str = "IN",  # noqa: A002
        yard_id: str = "yard1",
        owner: str | None = "Acme Leasing",
        damages: list[bool] | None = None,
        **fields: Any,
    ) -> Movement:
        trailer = trailers.get(trailer_number)
        if trailer is None:
            trailer = Trailer(id=uuid.uuid4(), trailer_number=trailer_number, owner=owner)
            async_session.add(trailer)
            trailers[trailer_number] = trailer
        movement = Movement(
            id=uuid.uuid4(),
            yard_id=yard_id,
            type=type,
            ts=ts or datetime(2024, 3, 10, 15, 30, tzinfo=UTC),
            trailer_id=trailer.id,
            **fields,
        )
        async_session.add(movement)
        for new_damage in damages or []:
            async_session.add(
                MovementDamage(id=uuid.uuid4(), movement_id=movement.id, location="left", new_damage=new_damage)
            )
        await async_session.commit()
        return movement

    return _add
