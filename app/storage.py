"""S3-compatible object storage client for export downloads.

Uploads are streamed as S3 multipart uploads: incoming chunks are buffered up
to the minimum part size and sent part by part, so an export never has to be
held in memory as a whole. boto3 is synchronous, so every call runs in a
worker thread through ``asyncio.to_thread``.

How to Use
===========
**Step 1 — Build from settings on startup**::
    storage = ObjectStorage.from_settings(settings)

**Step 2 — Stream an object**::
    stored = await storage.upload_stream("downloads/report.csv", chunks, "text/csv")
    print(stored.url)

**Step 3 — Close on shutdown**::
    storage.close()

Key Behaviours
===============
- An upload that fails or is cancelled midway is aborted, so no partial object remains.
- The public URL is the configured public base joined with the quoted object key.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.config import Settings

__all__ = ["ObjectStorage", "StoredObject", "MIN_PART_SIZE"]

# S3 rejects non-final parts smaller than 5 MiB
MIN_PART_SIZE = 5 * 1024 * 1024

logger = logging.getLogger("linkshortener.storage")


@dataclass
class StoredObject:
    key: str
    url: str
    size: int


class ObjectStorage:
    def __init__(self, client, bucket: str, public_url: str, part_size: int = MIN_PART_SIZE):
        self._client = client
        self._bucket = bucket
        self._public_url = public_url.rstrip("/")
        self._part_size = part_size

    @classmethod
    def from_settings(cls, settings: Settings) -> "ObjectStorage":
        client = boto3.client(
            "s3",
            endpoint_url=settings.STORAGE_ENDPOINT_URL,
            region_name=settings.STORAGE_REGION,
            aws_access_key_id=settings.STORAGE_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.STORAGE_SECRET_ACCESS_KEY or None,
        )
        return cls(client, settings.STORAGE_BUCKET, settings.STORAGE_PUBLIC_URL)

    def public_url(self, key: str) -> str:
        return f"{self._public_url}/{quote(key)}"

    async def upload_stream(
        self, key: str, chunks: AsyncIterator[bytes], content_type: str
    ) -> StoredObject:
        """Upload an async stream of byte chunks as a single object.

        Args:
            key: Object key inside the bucket
            chunks: Async iterator of encoded content
            content_type: MIME type stored with the object

        Returns:
            StoredObject: Key, public URL and total size of the stored object
        """
        upload = await asyncio.to_thread(
            self._client.create_multipart_upload,
            Bucket=self._bucket,
            Key=key,
            ContentType=content_type,
        )
        upload_id = upload["UploadId"]
        parts: list[dict] = []
        buffer = bytearray()
        size = 0

        try:
            async for chunk in chunks:
                buffer.extend(chunk)
                size += len(chunk)
                if len(buffer) >= self._part_size:
                    parts.append(await self._upload_part(key, upload_id, len(parts) + 1, bytes(buffer)))
                    buffer.clear()

            if buffer or not parts:
                parts.append(await self._upload_part(key, upload_id, len(parts) + 1, bytes(buffer)))

            await asyncio.to_thread(
                self._client.complete_multipart_upload,
                Bucket=self._bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except (Exception, asyncio.CancelledError):
            await self._abort(key, upload_id)
            raise

        logger.info(f"Uploaded {key} ({size} bytes, {len(parts)} parts)")
        return StoredObject(key=key, url=self.public_url(key), size=size)

    def close(self) -> None:
        self._client.close()

    async def _upload_part(self, key: str, upload_id: str, part_number: int, body: bytes) -> dict:
        response = await asyncio.to_thread(
            self._client.upload_part,
            Bucket=self._bucket,
            Key=key,
            UploadId=upload_id,
            PartNumber=part_number,
            Body=body,
        )
        return {"ETag": response["ETag"], "PartNumber": part_number}

    async def _abort(self, key: str, upload_id: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.abort_multipart_upload,
                Bucket=self._bucket,
                Key=key,
                UploadId=upload_id,
            )
            logger.warning(f"Aborted multipart upload for {key}")
        except (BotoCoreError, ClientError) as exc:
            logger.error(f"Failed to abort multipart upload for {key}: {exc}")
