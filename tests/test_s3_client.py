"""S3 blob store tests using botocore's Stubber (no network)."""

import io
from datetime import datetime

import boto3
import pytest
from botocore.response import StreamingBody
from botocore.stub import ANY, Stubber

from animegen.services.exceptions import StorageError
from animegen.services.storage.s3_client import (
    IMMUTABLE_CACHE_CONTROL,
    S3BlobStore,
    image_storage_key,
)
from tests.helpers import PNG_BYTES


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )


@pytest.fixture
def stubber(s3_client):
    with Stubber(s3_client) as stubber:
        yield stubber
        stubber.assert_no_pending_responses()


@pytest.fixture
def store(s3_client) -> S3BlobStore:
    return S3BlobStore(s3_client, "images-bucket")


def test_storage_key_is_namespaced_by_year_and_month():
    assert image_storage_key("abc", datetime(2025, 3, 9)) == "images/2025/03/abc.png"


@pytest.mark.asyncio
async def test_put_sends_content_type_cache_control_and_metadata(store, stubber):
    stubber.add_response(
        "put_object",
        {"ETag": '"etag"'},
        {
            "Bucket": "images-bucket",
            "Key": "images/2025/03/abc.png",
            "Body": ANY,
            "ContentType": "image/png",
            "CacheControl": IMMUTABLE_CACHE_CONTROL,
            "Metadata": {"job-id": "job1"},
        },
    )

    key = await store.put("images/2025/03/abc.png", PNG_BYTES, metadata={"job-id": "job1"})

    assert key == "images/2025/03/abc.png"


@pytest.mark.asyncio
async def test_put_failure_raises_storage_error(store, stubber):
    stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)

    with pytest.raises(StorageError, match="Failed to store object"):
        await store.put("images/2025/03/abc.png", PNG_BYTES)


@pytest.mark.asyncio
async def test_get_returns_object(store, stubber):
    stubber.add_response(
        "get_object",
        {
            "Body": StreamingBody(io.BytesIO(PNG_BYTES), len(PNG_BYTES)),
            "ContentType": "image/png",
            "ETag": '"etag"',
            "ContentLength": len(PNG_BYTES),
        },
        {"Bucket": "images-bucket", "Key": "images/2025/03/abc.png"},
    )

    obj = await store.get("images/2025/03/abc.png")

    assert obj is not None
    assert obj.body == PNG_BYTES
    assert obj.content_type == "image/png"
    assert obj.etag == '"etag"'
    assert obj.size == len(PNG_BYTES)


@pytest.mark.asyncio
async def test_get_missing_key_returns_none(store, stubber):
    stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)

    assert await store.get("images/2025/03/missing.png") is None


@pytest.mark.asyncio
async def test_get_other_errors_raise(store, stubber):
    stubber.add_client_error("get_object", service_error_code="AccessDenied", http_status_code=403)

    with pytest.raises(StorageError, match="Failed to read object"):
        await store.get("images/2025/03/abc.png")


@pytest.mark.asyncio
async def test_delete(store, stubber):
    stubber.add_response(
        "delete_object", {}, {"Bucket": "images-bucket", "Key": "images/2025/03/abc.png"}
    )

    await store.delete("images/2025/03/abc.png")
