"""Shared pytest fixtures for API, database, and object storage tests."""

from collections.abc import AsyncGenerator
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.dependencies import ServiceManager
from app.main import app
from app.storage import ObjectStorage

PUBLIC_URL = "https://cdn.test/links"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'links.db'}",
        LOG_LEVEL="DEBUG",
        STORAGE_BUCKET="test-bucket",
        STORAGE_PUBLIC_URL=PUBLIC_URL,
        EXPORT_BATCH_SIZE=2,
        EXPORT_CHANNEL_SIZE=2,
    )


@pytest.fixture
def s3_client() -> MagicMock:
    """boto3 S3 client double that records uploaded part bodies in order."""
    client = MagicMock()
    client.uploaded_parts = []
    client.create_multipart_upload.return_value = {"UploadId": "upload-1"}

    def upload_part(**kwargs):
        client.uploaded_parts.append(kwargs["Body"])
        return {"ETag": f'"etag-{kwargs["PartNumber"]}"'}

    client.upload_part.side_effect = upload_part
    return client


@pytest.fixture
def storage(s3_client: MagicMock) -> ObjectStorage:
    return ObjectStorage(s3_client, "test-bucket", PUBLIC_URL)


@pytest.fixture
def mock_logger() -> MagicMock:
    return MagicMock()


@pytest_asyncio.fixture(scope="function")
async def manager(settings: Settings, storage: ObjectStorage) -> AsyncGenerator[ServiceManager, None]:
    service_manager = ServiceManager(settings=settings, storage=storage)
    await service_manager.initialize()
    yield service_manager
    await service_manager.cleanup()


@pytest_asyncio.fixture(scope="function")
async def db_session(manager: ServiceManager) -> AsyncGenerator[AsyncSession, None]:
    async with manager.session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(manager: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    app.state.service_manager = manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    del app.state.service_manager


@pytest.fixture
def uploaded_csv(s3_client: MagicMock):
    """Return the CSV uploaded so far, reassembled from its parts."""

    def read() -> str:
        return b"".join(s3_client.uploaded_parts).decode("utf-8")

    return read
