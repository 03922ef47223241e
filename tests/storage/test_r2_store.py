"""Tests for the R2 asset store."""

import os
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from asset_gateway.errors import ConflictError, RangeNotSatisfiableError
from asset_gateway.storage.base import Absent, PresentNoBody, PresentWithBody
from asset_gateway.storage.http import OffsetRange, SuffixRange
from asset_gateway.storage.r2 import R2AssetStore
from asset_gateway.storage.streams import iter_bytes

from helpers import read_all


def client_error(code: str, operation: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def head_response(size: int = 1000, **extra) -> dict:
    response = {
        "ContentLength": size,
        "ETag": '"abc123"',
        "ContentType": "image/png",
        "LastModified": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    response.update(extra)
    return response


def streaming_body(*chunks: bytes) -> MagicMock:
    body = MagicMock()
    body.read.side_effect = list(chunks) + [b""]
    return body


class TestR2AssetStore:
    """Test R2AssetStore class."""

    @pytest.fixture(autouse=True)
    def mock_env(self):
        """Set up mock environment variables."""
        with patch.dict(
            os.environ,
            {
                "ASSET_R2_ACCESS_KEY_ID": "test-access-key",
                "ASSET_R2_SECRET_ACCESS_KEY": "test-secret-key",
            },
        ):
            yield

    @pytest.fixture
    def mock_boto3(self):
        """Create mock boto3 client."""
        with patch("asset_gateway.storage.r2.boto3") as mock:
            mock_client = MagicMock()
            mock.client.return_value = mock_client
            yield mock_client

    @pytest.fixture
    def store(self, mock_boto3):
        return R2AssetStore("my-bucket", "https://r2.example.com")

    def test_init_without_credentials(self):
        """Test initialization without credentials raises error."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="ASSET_R2_ACCESS_KEY_ID"):
                R2AssetStore("bucket", "https://r2.example.com")

    def test_init_with_explicit_credentials(self, mock_boto3):
        with patch.dict(os.environ, {}, clear=True):
            store = R2AssetStore(
                "bucket",
                "https://r2.example.com",
                access_key_id="key",
                secret_access_key="secret",
            )
        assert store.bucket == "bucket"

    @pytest.mark.asyncio
    async def test_head(self, store, mock_boto3):
        mock_boto3.head_object.return_value = head_response()

        metadata = await store.head("uploads/pic")

        assert metadata.size == 1000
        assert metadata.etag == "abc123"
        assert metadata.http_metadata == {"content-type": "image/png"}
        mock_boto3.head_object.assert_called_once_with(Bucket="my-bucket", Key="uploads/pic")

    @pytest.mark.asyncio
    async def test_head_missing(self, store, mock_boto3):
        mock_boto3.head_object.side_effect = client_error("404", "HeadObject")

        assert await store.head("uploads/pic") is None

    @pytest.mark.asyncio
    async def test_head_other_error_propagates(self, store, mock_boto3):
        mock_boto3.head_object.side_effect = client_error("AccessDenied", "HeadObject")

        with pytest.raises(ClientError):
            await store.head("uploads/pic")

    @pytest.mark.asyncio
    async def test_get_full(self, store, mock_boto3):
        mock_boto3.get_object.return_value = head_response(
            Body=streaming_body(b"abc", b"def")
        )

        result = await store.get("uploads/pic")

        assert isinstance(result, PresentWithBody)
        assert result.metadata.range is None
        assert await read_all(result.body) == b"abcdef"
        mock_boto3.get_object.assert_called_once_with(Bucket="my-bucket", Key="uploads/pic")

    @pytest.mark.asyncio
    async def test_get_range_forwarded(self, store, mock_boto3):
        mock_boto3.get_object.return_value = head_response(
            size=100, ContentRange="bytes 0-99/1000", Body=streaming_body(b"x" * 100)
        )

        result = await store.get("uploads/pic", range_header="bytes=0-99")

        assert result.metadata.size == 1000
        assert result.metadata.range == OffsetRange(0, 100)
        assert mock_boto3.get_object.call_args.kwargs["Range"] == "bytes=0-99"

    @pytest.mark.asyncio
    async def test_get_suffix_range(self, store, mock_boto3):
        mock_boto3.get_object.return_value = head_response(
            size=100, ContentRange="bytes 900-999/1000", Body=streaming_body(b"x" * 100)
        )

        result = await store.get("uploads/pic", range_header="bytes=-100")

        assert result.metadata.range == SuffixRange(100)

    @pytest.mark.asyncio
    async def test_get_malformed_range_not_forwarded(self, store, mock_boto3):
        mock_boto3.get_object.return_value = head_response(Body=streaming_body(b"abc"))

        await store.get("uploads/pic", range_header="bytes=0-1,5-6")

        assert "Range" not in mock_boto3.get_object.call_args.kwargs

    @pytest.mark.asyncio
    async def test_get_conditions_forwarded(self, store, mock_boto3):
        mock_boto3.get_object.return_value = head_response(Body=streaming_body(b"abc"))

        await store.get(
            "uploads/pic",
            conditions={
                "if-none-match": '"zzz"',
                "if-modified-since": "Mon, 01 Jan 2024 00:00:00 GMT",
            },
        )

        kwargs = mock_boto3.get_object.call_args.kwargs
        assert kwargs["IfNoneMatch"] == '"zzz"'
        assert kwargs["IfModifiedSince"] == datetime(2024, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_get_missing(self, store, mock_boto3):
        mock_boto3.get_object.side_effect = client_error("NoSuchKey")

        assert isinstance(await store.get("uploads/pic"), Absent)

    @pytest.mark.asyncio
    async def test_get_not_modified(self, store, mock_boto3):
        mock_boto3.get_object.side_effect = client_error("304")
        mock_boto3.head_object.return_value = head_response()

        result = await store.get("uploads/pic", conditions={"if-none-match": '"abc123"'})

        assert isinstance(result, PresentNoBody)
        assert result.metadata.etag == "abc123"

    @pytest.mark.asyncio
    async def test_get_precondition_failed(self, store, mock_boto3):
        mock_boto3.get_object.side_effect = client_error("PreconditionFailed")
        mock_boto3.head_object.return_value = head_response()

        result = await store.get("uploads/pic", conditions={"if-match": '"zzz"'})

        assert isinstance(result, PresentNoBody)

    @pytest.mark.asyncio
    async def test_get_invalid_range(self, store, mock_boto3):
        mock_boto3.get_object.side_effect = client_error("InvalidRange")
        mock_boto3.head_object.return_value = head_response()

        with pytest.raises(RangeNotSatisfiableError) as exc_info:
            await store.get("uploads/pic", range_header="bytes=5000-")
        assert exc_info.value.size == 1000

    @pytest.mark.asyncio
    async def test_put(self, store, mock_boto3):
        uploaded = {}

        def fake_put(**kwargs):
            uploaded.update(kwargs)
            uploaded["data"] = kwargs["Body"].read()
            return {"ETag": '"etag-1"'}

        mock_boto3.put_object.side_effect = fake_put

        metadata = await store.put(
            "uploads/pic",
            iter_bytes(b"png-bytes"),
            {"content-type": "image/png", "content-disposition": "inline"},
        )

        assert metadata.size == 9
        assert metadata.etag == "etag-1"
        assert uploaded["data"] == b"png-bytes"
        assert uploaded["IfNoneMatch"] == "*"
        assert uploaded["ContentType"] == "image/png"
        assert uploaded["ContentDisposition"] == "inline"
        assert uploaded["Key"] == "uploads/pic"

    @pytest.mark.asyncio
    async def test_put_conflict(self, store, mock_boto3):
        mock_boto3.put_object.side_effect = client_error("PreconditionFailed", "PutObject")

        with pytest.raises(ConflictError):
            await store.put("uploads/pic", iter_bytes(b"png"), {"content-type": "image/png"})

    @pytest.mark.asyncio
    async def test_delete(self, store, mock_boto3):
        await store.delete("uploads/pic")

        mock_boto3.delete_object.assert_called_once_with(Bucket="my-bucket", Key="uploads/pic")
