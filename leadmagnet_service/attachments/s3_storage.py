"""S3-compatible object storage (Cloudflare R2, AWS S3, MinIO) via aioboto3."""

from typing import Optional

import aioboto3

from .base import ObjectStorageBase


class S3ObjectStorage(ObjectStorageBase):
    """Store document blobs in a single S3 bucket.

    Args:
        bucket: Bucket name.
        endpoint_url: Custom endpoint (R2 account endpoint); ``None`` for AWS.
        access_key_id: Access key; falls back to the boto credential chain.
        secret_access_key: Secret key; falls back to the boto credential chain.
        region: Region name, ``"auto"`` for R2.
    """

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        region: str = "auto",
    ):
        self.bucket = bucket
        self._endpoint_url = endpoint_url
        self._region = region
        self._session = aioboto3.Session(
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )

    def _client(self):
        return self._session.client("s3", endpoint_url=self._endpoint_url, region_name=self._region)

    async def put(self, key: str, body: bytes, content_type: str) -> None:
        async with self._client() as s3:
            await s3.put_object(Bucket=self.bucket, Key=key, Body=body, ContentType=content_type)

    async def get(self, key: str) -> Optional[bytes]:
        async with self._client() as s3:
            resp = await s3.get_object(Bucket=self.bucket, Key=key)
            body = resp.get("Body")
            if body is None:
                return None
            async with body as stream:
                return await stream.read()

    async def delete(self, key: str) -> None:
        async with self._client() as s3:
            await s3.delete_object(Bucket=self.bucket, Key=key)
