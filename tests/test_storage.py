from unittest.mock import MagicMock

import boto3
import pytest
from boto3.exceptions import S3UploadFailedError
from botocore.stub import Stubber

from videos.errors import UploadError
from videos.storage import RemoteAssetStore


@pytest.fixture
def thumb(tmp_path):
    path = tmp_path / "thumb-01.jpg"
    path.write_bytes(b"\xff\xd8jpeg")
    return path


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )


def test_upload_returns_public_url_and_key(thumb):
    client = MagicMock()
    store = RemoteAssetStore(client, "media", "http://minio:9000/", key_prefix="videos")

    asset = store.upload(thumb, "thumbnail", prefix="abc")

    assert asset.remote_id.startswith("videos/abc/thumbnail/")
    assert asset.remote_id.endswith(".jpg")
    assert asset.url == f"http://minio:9000/media/{asset.remote_id}"
    client.upload_file.assert_called_once_with(
        str(thumb), "media", asset.remote_id, ExtraArgs={"ContentType": "image/jpeg"}
    )


def test_reupload_creates_a_new_object(thumb):
    store = RemoteAssetStore(MagicMock(), "media", "http://minio:9000")
    first = store.upload(thumb, "thumbnail")
    second = store.upload(thumb, "thumbnail")
    assert first.remote_id != second.remote_id


def test_upload_failure_becomes_upload_error(thumb):
    client = MagicMock()
    client.upload_file.side_effect = S3UploadFailedError("connection reset")
    store = RemoteAssetStore(client, "media", "http://minio:9000")

    with pytest.raises(UploadError, match="connection reset") as excinfo:
        store.upload(thumb, "thumbnail")
    assert excinfo.value.retryable is True


def test_delete_twice_is_fine(s3_client):
    store = RemoteAssetStore(s3_client, "media", "http://minio:9000")
    with Stubber(s3_client) as stubber:
        stubber.add_response("delete_object", {}, {"Bucket": "media", "Key": "videos/a/video/1.mp4"})
        stubber.add_response("delete_object", {}, {"Bucket": "media", "Key": "videos/a/video/1.mp4"})

        store.delete("videos/a/video/1.mp4")
        store.delete("videos/a/video/1.mp4")

        stubber.assert_no_pending_responses()


def test_delete_of_missing_object_is_a_no_op(s3_client):
    store = RemoteAssetStore(s3_client, "media", "http://minio:9000")
    with Stubber(s3_client) as stubber:
        stubber.add_client_error("delete_object", service_error_code="NoSuchKey", http_status_code=404)
        store.delete("videos/gone.mp4")


def test_delete_surfaces_real_errors(s3_client):
    store = RemoteAssetStore(s3_client, "media", "http://minio:9000")
    with Stubber(s3_client) as stubber:
        stubber.add_client_error("delete_object", service_error_code="AccessDenied", http_status_code=403)
        with pytest.raises(UploadError, match="AccessDenied"):
            store.delete("videos/a.mp4")
