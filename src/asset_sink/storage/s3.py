"""
S3Backend — boto3-backed implementation of ObjectStoreBackend.

Works with any S3-compatible service (AWS S3, GCS interoperability, MinIO)
by pointing ``OBJECT_STORE_ENDPOINT`` to the appropriate service URL.
boto3 is blocking, so every client call runs in a worker thread via
``asyncio.to_thread``.

Also exposes ``get_backend()`` factory, which resolves the active backend
from ``settings.object_store_type``.
"""
import asyncio
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from asset_sink.config import Settings, settings
from asset_sink.errors import ConflictError, InvalidArgumentError, NotFoundError
from asset_sink.logging_config import get_logger
from asset_sink.storage.interface import (
    ListEntry,
    ObjectReader,
    ObjectStoreBackend,
    ObjectWriter,
    WriteOptions,
)
from asset_sink.storage.memory import MemoryBackend

logger = get_logger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}
_CONFLICT_CODES = {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}
_ALL_USERS = "http://acs.amazonaws.com/groups/global/AllUsers"


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def is_not_found(error: ClientError) -> bool:
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return _error_code(error) in _NOT_FOUND_CODES or status == 404


def _put_args(options: WriteOptions) -> Dict[str, Any]:
    args: Dict[str, Any] = {
        "ContentType": options.content_type,
        "ACL": "public-read" if options.public else "private",
    }
    if options.metadata:
        # S3 metadata keys and values must be strings
        args["Metadata"] = {str(k): str(v) for k, v in options.metadata.items()}
    return args


class _S3Writer(ObjectWriter):
    """
    Buffered writer for one object.

    Resumable writes switch to a multipart upload once a full part is
    buffered; small or non-resumable objects go out as one ``put_object``.
    """

    def __init__(self, backend: "S3Backend", key: str, options: WriteOptions) -> None:
        self._backend = backend
        self._key = key
        self._options = options
        self._buffer = bytearray()
        self._upload_id: Optional[str] = None
        self._parts: List[Dict[str, Any]] = []

    @property
    def _client(self):
        return self._backend.client

    async def write(self, chunk: bytes) -> None:
        self._buffer.extend(chunk)
        if self._options.resumable and len(self._buffer) >= self._backend.part_size:
            await self._flush_part()

    async def _flush_part(self) -> None:
        if self._upload_id is None:
            resp = await asyncio.to_thread(
                self._client.create_multipart_upload,
                Bucket=self._backend.bucket,
                Key=self._key,
                **_put_args(self._options),
            )
            self._upload_id = resp["UploadId"]

        body = bytes(self._buffer)
        self._buffer.clear()
        part_number = len(self._parts) + 1
        resp = await asyncio.to_thread(
            self._client.upload_part,
            Bucket=self._backend.bucket,
            Key=self._key,
            UploadId=self._upload_id,
            PartNumber=part_number,
            Body=body,
        )
        self._parts.append({"ETag": resp["ETag"], "PartNumber": part_number})

    async def close(self) -> None:
        if self._upload_id is None:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self._backend.bucket,
                Key=self._key,
                Body=bytes(self._buffer),
                **_put_args(self._options),
            )
            self._buffer.clear()
            return

        if self._buffer:
            await self._flush_part()
        await asyncio.to_thread(
            self._client.complete_multipart_upload,
            Bucket=self._backend.bucket,
            Key=self._key,
            UploadId=self._upload_id,
            MultipartUpload={"Parts": self._parts},
        )

    async def abort(self) -> None:
        self._buffer.clear()
        if self._upload_id is None:
            return
        try:
            await asyncio.to_thread(
                self._client.abort_multipart_upload,
                Bucket=self._backend.bucket,
                Key=self._key,
                UploadId=self._upload_id,
            )
        except ClientError as e:
            logger.warning("multipart_abort_failed", key=self._key, error=str(e))


class _S3Reader(ObjectReader):
    def __init__(self, backend: "S3Backend", key: str) -> None:
        self._backend = backend
        self._key = key
        self._body = None

    async def open(self) -> None:
        try:
            resp = await asyncio.to_thread(
                self._backend.client.get_object, Bucket=self._backend.bucket, Key=self._key
            )
        except ClientError as e:
            if is_not_found(e):
                raise NotFoundError(self._key) from e
            raise
        self._body = resp["Body"]

    async def read(self, size: int = -1) -> bytes:
        if self._body is None:
            raise RuntimeError("reader is not open")
        if size < 0:
            return await asyncio.to_thread(self._body.read)
        return await asyncio.to_thread(self._body.read, size)

    async def close(self) -> None:
        if self._body is not None:
            self._body.close()
            self._body = None


class _S3Entry(ListEntry):
    def __init__(self, backend: "S3Backend", key: str) -> None:
        self._backend = backend
        self.key = key

    async def download(self) -> bytes:
        return await self._backend.download(self.key)


class S3Backend(ObjectStoreBackend):
    """
    S3-compatible object store.

    Backed by any S3-compatible service — set ``OBJECT_STORE_ENDPOINT``
    to ``http://minio:9000`` locally or omit for AWS S3.
    """

    def __init__(
        self,
        bucket: str,
        client: Any = None,
        region: Optional[str] = None,
        part_size: int = 8 * 1024 * 1024,
    ) -> None:
        bucket = (bucket or "").strip()
        if not bucket:
            raise InvalidArgumentError('"bucket" string must be provided')
        self.bucket = bucket
        self.region = region
        self.part_size = part_size
        self.client = client or boto3.client("s3", region_name=region)

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "S3Backend":
        """Build the boto3 client from environment configuration."""
        client = boto3.client(
            "s3",
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.object_store_access_key,
            aws_secret_access_key=config.object_store_secret_key,
            region_name=config.object_store_region,
        )
        return cls(
            bucket=config.object_store_bucket,
            client=client,
            region=config.object_store_region,
            part_size=config.multipart_chunk_bytes,
        )

    async def container_exists(self) -> bool:
        try:
            await asyncio.to_thread(self.client.head_bucket, Bucket=self.bucket)
        except ClientError as e:
            if is_not_found(e):
                return False
            raise
        return True

    async def create_container(self) -> None:
        kwargs: Dict[str, Any] = {"Bucket": self.bucket}
        if self.region and self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            await asyncio.to_thread(self.client.create_bucket, **kwargs)
        except ClientError as e:
            if _error_code(e) in _CONFLICT_CODES:
                raise ConflictError(f"bucket '{self.bucket}' already exists") from e
            raise

    async def open_write_stream(self, key: str, options: WriteOptions) -> ObjectWriter:
        return _S3Writer(self, key, options)

    def open_read_stream(self, key: str) -> ObjectReader:
        return _S3Reader(self, key)

    async def exists(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if is_not_found(e):
                return False
            raise
        return True

    async def download(self, key: str) -> bytes:
        try:
            resp = await asyncio.to_thread(self.client.get_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if is_not_found(e):
                raise NotFoundError(key) from e
            raise
        body = resp["Body"]
        try:
            return await asyncio.to_thread(body.read)
        finally:
            body.close()

    async def save(self, key: str, content: bytes, options: WriteOptions) -> None:
        await asyncio.to_thread(
            self.client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=content,
            **_put_args(options),
        )

    async def _canned_acl(self, key: str) -> str:
        """Recover the canned ACL of *key*; copies do not inherit grants."""
        resp = await asyncio.to_thread(self.client.get_object_acl, Bucket=self.bucket, Key=key)
        for grant in resp.get("Grants", []):
            grantee = grant.get("Grantee", {})
            if grantee.get("URI") == _ALL_USERS and grant.get("Permission") in ("READ", "FULL_CONTROL"):
                return "public-read"
        return "private"

    async def move(self, key: str, new_key: str) -> None:
        """S3 has no rename: copy (metadata and canned ACL preserved) then delete."""
        try:
            acl = await self._canned_acl(key)
            await asyncio.to_thread(
                self.client.copy_object,
                Bucket=self.bucket,
                Key=new_key,
                CopySource={"Bucket": self.bucket, "Key": key},
                MetadataDirective="COPY",
                ACL=acl,
            )
        except ClientError as e:
            if is_not_found(e):
                raise NotFoundError(key) from e
            raise
        await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)

    async def list_with_prefix(self, prefix: str) -> Optional[List[ListEntry]]:
        def _collect() -> List[str]:
            keys: List[str] = []
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
            return keys

        keys = await asyncio.to_thread(_collect)
        return [_S3Entry(self, key) for key in keys]


def get_backend(config: Settings = settings) -> ObjectStoreBackend:
    """
    Factory: resolve the active backend from configuration.

    Supports ``s3`` (default) and ``memory`` (local development).
    """
    backend_type = config.object_store_type.lower()
    if backend_type == "s3":
        return S3Backend.from_settings(config)
    if backend_type == "memory":
        return MemoryBackend(container=config.object_store_bucket)
    raise ValueError(
        f"Unknown OBJECT_STORE_TYPE: '{backend_type}'. Supported: s3, memory"
    )
