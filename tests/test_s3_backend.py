"""Unit tests for S3Backend — mock boto3 client, no network needed."""
import pytest
from unittest.mock import MagicMock

from botocore.exceptions import ClientError

from asset_sink.config import Settings
from asset_sink.errors import ConflictError, InvalidArgumentError, NotFoundError
from asset_sink.storage.interface import WriteOptions
from asset_sink.storage.memory import MemoryBackend
from asset_sink.storage.s3 import S3Backend, get_backend


def _client_error(code: str, status: int = 400, operation: str = "Op") -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


@pytest.fixture
def client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def s3(client) -> S3Backend:
    return S3Backend(bucket="assets", client=client, region="eu-west-1", part_size=8)


def test_bucket_is_required(client):
    with pytest.raises(InvalidArgumentError, match='"bucket" string must be provided'):
        S3Backend(bucket="  ", client=client)


@pytest.mark.asyncio
async def test_container_exists(s3, client):
    assert await s3.container_exists() is True
    client.head_bucket.side_effect = _client_error("404", 404)
    assert await s3.container_exists() is False


@pytest.mark.asyncio
async def test_create_container_sets_location(s3, client):
    await s3.create_container()
    client.create_bucket.assert_called_once_with(
        Bucket="assets",
        CreateBucketConfiguration={"LocationConstraint": "eu-west-1"},
    )


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["BucketAlreadyOwnedByYou", "BucketAlreadyExists"])
async def test_create_container_conflict(s3, client, code):
    client.create_bucket.side_effect = _client_error(code, 409)
    with pytest.raises(ConflictError):
        await s3.create_container()


@pytest.mark.asyncio
async def test_small_write_is_a_single_put(s3, client):
    writer = await s3.open_write_stream(
        "tmp-1-a.css", WriteOptions(content_type="text/css", public=True, metadata={"v": 1})
    )
    await writer.write(b"a{}")
    await writer.close()

    client.put_object.assert_called_once_with(
        Bucket="assets",
        Key="tmp-1-a.css",
        Body=b"a{}",
        ContentType="text/css",
        ACL="public-read",
        Metadata={"v": "1"},
    )
    client.create_multipart_upload.assert_not_called()


@pytest.mark.asyncio
async def test_resumable_write_uses_multipart_upload(s3, client):
    client.create_multipart_upload.return_value = {"UploadId": "up-1"}
    client.upload_part.side_effect = [{"ETag": "e1"}, {"ETag": "e2"}]

    writer = await s3.open_write_stream("tmp-1-a.json", WriteOptions(content_type="application/json"))
    await writer.write(b"0123456789")  # over one part
    await writer.write(b"abc")
    await writer.close()

    assert client.upload_part.call_count == 2
    client.complete_multipart_upload.assert_called_once_with(
        Bucket="assets",
        Key="tmp-1-a.json",
        UploadId="up-1",
        MultipartUpload={"Parts": [{"ETag": "e1", "PartNumber": 1}, {"ETag": "e2", "PartNumber": 2}]},
    )
    client.put_object.assert_not_called()


@pytest.mark.asyncio
async def test_non_resumable_write_buffers_everything(s3, client):
    writer = await s3.open_write_stream("k.txt", WriteOptions(resumable=False, public=False))
    await writer.write(b"0123456789")
    await writer.write(b"0123456789")
    await writer.close()

    client.create_multipart_upload.assert_not_called()
    kwargs = client.put_object.call_args.kwargs
    assert kwargs["Body"] == b"01234567890123456789"
    assert kwargs["ACL"] == "private"


@pytest.mark.asyncio
async def test_abort_cancels_multipart_upload(s3, client):
    client.create_multipart_upload.return_value = {"UploadId": "up-2"}
    client.upload_part.return_value = {"ETag": "e1"}

    writer = await s3.open_write_stream("k.json", WriteOptions())
    await writer.write(b"0123456789")
    await writer.abort()

    client.abort_multipart_upload.assert_called_once_with(Bucket="assets", Key="k.json", UploadId="up-2")


@pytest.mark.asyncio
async def test_read_stream_not_found(s3, client):
    client.get_object.side_effect = _client_error("NoSuchKey", 404)
    reader = s3.open_read_stream("missing.json")
    with pytest.raises(NotFoundError):
        await reader.open()


@pytest.mark.asyncio
async def test_read_stream_relays_body(s3, client):
    body = MagicMock()
    body.read.side_effect = [b"abcd", b""]
    client.get_object.return_value = {"Body": body}

    reader = s3.open_read_stream("a.json")
    await reader.open()
    assert await reader.read(4) == b"abcd"
    assert await reader.read(4) == b""
    await reader.close()
    body.close.assert_called_once()


@pytest.mark.asyncio
async def test_exists_maps_404_to_false(s3, client):
    assert await s3.exists("a.json") is True
    client.head_object.side_effect = _client_error("404", 404)
    assert await s3.exists("a.json") is False


@pytest.mark.asyncio
async def test_exists_propagates_other_errors(s3, client):
    client.head_object.side_effect = _client_error("AccessDenied", 403)
    with pytest.raises(ClientError):
        await s3.exists("a.json")


@pytest.mark.asyncio
async def test_move_copies_with_acl_then_deletes(s3, client):
    client.get_object_acl.return_value = {
        "Grants": [
            {"Grantee": {"URI": "http://acs.amazonaws.com/groups/global/AllUsers"}, "Permission": "READ"}
        ]
    }

    await s3.move("tmp-1-a.json", "abc.json")

    client.copy_object.assert_called_once_with(
        Bucket="assets",
        Key="abc.json",
        CopySource={"Bucket": "assets", "Key": "tmp-1-a.json"},
        MetadataDirective="COPY",
        ACL="public-read",
    )
    client.delete_object.assert_called_once_with(Bucket="assets", Key="tmp-1-a.json")


@pytest.mark.asyncio
async def test_move_of_missing_object(s3, client):
    client.get_object_acl.side_effect = _client_error("NoSuchKey", 404)
    with pytest.raises(NotFoundError):
        await s3.move("tmp-1-a.json", "abc.json")
    client.delete_object.assert_not_called()


@pytest.mark.asyncio
async def test_list_with_prefix_pages_through_results(s3, client):
    paginator = MagicMock()
    paginator.paginate.return_value = [
        {"Contents": [{"Key": "p/a.json"}, {"Key": "p/b.json"}]},
        {},
    ]
    client.get_paginator.return_value = paginator
    body = MagicMock()
    body.read.return_value = b"{}"
    client.get_object.return_value = {"Body": body}

    entries = await s3.list_with_prefix("p/")

    assert [entry.key for entry in entries] == ["p/a.json", "p/b.json"]
    paginator.paginate.assert_called_once_with(Bucket="assets", Prefix="p/")
    assert await entries[0].download() == b"{}"


def test_get_backend_factory():
    assert isinstance(get_backend(Settings(object_store_type="memory")), MemoryBackend)
    with pytest.raises(ValueError, match="Unknown OBJECT_STORE_TYPE"):
        get_backend(Settings(object_store_type="ftp"))


def test_endpoint_url_resolution():
    assert Settings(object_store_endpoint="").endpoint_url is None
    assert Settings(object_store_endpoint="minio:9000").endpoint_url == "http://minio:9000"
    assert (
        Settings(object_store_endpoint="minio:9000", object_store_use_ssl=True).endpoint_url
        == "https://minio:9000"
    )
