import io
from types import SimpleNamespace

import boto3
import pytest
from botocore.config import Config
from botocore.exceptions import ClientError
from botocore.response import StreamingBody
from botocore.stub import ANY, Stubber
from django.core.exceptions import ImproperlyConfigured

from compression import storage as storage_mod
from compression.disk_storage import LocalStorage
from compression.storage import ObjectNotFound, S3Storage, best_effort, build_storage, remove_local


@pytest.fixture
def s3():
    client = boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
        config=Config(signature_version="s3v4"),
    )
    with Stubber(client) as stubber:
        yield S3Storage(client, "images", url_expires=600), stubber
        stubber.assert_no_pending_responses()


def test_local_save_copies_under_key(tmp_path):
    src = tmp_path / "src.jpg"
    src.write_bytes(b"jpeg-bytes")
    store = LocalStorage(str(tmp_path / "store"), "/files/")

    locator = store.save(str(src), "compressed/abc.jpg")

    assert locator == str(tmp_path / "store" / "compressed" / "abc.jpg")
    assert store.get_buffer(locator) == b"jpeg-bytes"
    assert src.exists()


def test_local_get_buffer_missing_raises_not_found(tmp_path):
    store = LocalStorage(str(tmp_path), "/files/")
    with pytest.raises(ObjectNotFound):
        store.get_buffer(str(tmp_path / "nope.png"))


def test_local_delete_is_idempotent(tmp_path):
    store = LocalStorage(str(tmp_path), "/files/")
    f = tmp_path / "a.webp"
    f.write_bytes(b"x")

    store.delete(str(f))
    store.delete(str(f))

    assert not f.exists()


def test_local_url_is_relative_to_base(tmp_path):
    store = LocalStorage(str(tmp_path), "/api/v1/compress/files/")
    assert store.get_url(str(tmp_path / "abc_compressed.jpg")) == "/api/v1/compress/files/abc_compressed.jpg"
    assert store.get_url(str(tmp_path / "compressed" / "x.png")) == "/api/v1/compress/files/compressed/x.png"


def test_local_resolve_rejects_traversal(tmp_path):
    store = LocalStorage(str(tmp_path), "/files/")
    with pytest.raises(ObjectNotFound):
        store.resolve("../../etc/passwd")


def test_s3_save_uploads_with_content_type(s3, tmp_path):
    store, stubber = s3
    src = tmp_path / "out.png"
    src.write_bytes(b"png")
    stubber.add_response(
        "put_object",
        {},
        {"Bucket": "images", "Key": "compressed/j1.png", "Body": ANY, "ContentType": "image/png"},
    )

    assert store.save(str(src), "compressed/j1.png") == "compressed/j1.png"


def test_s3_get_buffer_reads_body(s3):
    store, stubber = s3
    stubber.add_response(
        "get_object",
        {"Body": StreamingBody(io.BytesIO(b"data"), 4)},
        {"Bucket": "images", "Key": "compressed/j1.jpg"},
    )

    assert store.get_buffer("compressed/j1.jpg") == b"data"


def test_s3_missing_key_maps_to_not_found(s3):
    store, stubber = s3
    stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)

    with pytest.raises(ObjectNotFound):
        store.get_buffer("compressed/gone.jpg")


def test_s3_access_denied_reads_as_not_found(s3):
    store, stubber = s3
    stubber.add_client_error("get_object", service_error_code="AccessDenied", http_status_code=403)

    with pytest.raises(ObjectNotFound):
        store.get_buffer("compressed/expired.jpg")


def test_s3_other_errors_propagate(s3):
    store, stubber = s3
    stubber.add_client_error("get_object", service_error_code="InternalError", http_status_code=500)

    with pytest.raises(ClientError):
        store.get_buffer("compressed/j1.jpg")


def test_s3_delete_ignores_missing(s3):
    store, stubber = s3
    stubber.add_response("delete_object", {}, {"Bucket": "images", "Key": "compressed/j1.jpg"})
    stubber.add_client_error("delete_object", service_error_code="NoSuchKey", http_status_code=404)

    store.delete("compressed/j1.jpg")
    store.delete("compressed/j1.jpg")


def test_s3_url_is_presigned(s3):
    store, _ = s3
    url = store.get_url("compressed/j1.jpg")
    assert "images" in url
    assert "compressed/j1.jpg" in url
    assert "X-Amz-Expires=600" in url


def _conf(**overrides):
    base = dict(
        STORAGE_DRIVER="local",
        UPLOAD_DIR="/tmp",
        S3_BUCKET="",
        SIGNED_URL_EXPIRES=3600,
    )
    base.update(overrides)
    return SimpleNamespace(**base)


def test_build_storage_local(tmp_path):
    store = build_storage(_conf(UPLOAD_DIR=str(tmp_path / "uploads")))
    assert isinstance(store, LocalStorage)
    assert not store.is_remote
    assert (tmp_path / "uploads").is_dir()


def test_build_storage_s3(monkeypatch):
    monkeypatch.setattr(storage_mod, "s3_client", lambda: "client")
    store = build_storage(_conf(STORAGE_DRIVER="S3", S3_BUCKET="images"))
    assert isinstance(store, S3Storage)
    assert store.is_remote
    assert store.bucket == "images"


def test_build_storage_s3_without_bucket_is_fatal():
    with pytest.raises(ImproperlyConfigured):
        build_storage(_conf(STORAGE_DRIVER="s3"))


def test_build_storage_unknown_driver():
    with pytest.raises(ImproperlyConfigured):
        build_storage(_conf(STORAGE_DRIVER="supabase"))


def test_best_effort_swallows_os_errors(tmp_path):
    def boom(path):
        raise PermissionError(path)

    best_effort(boom, str(tmp_path / "x"))
    best_effort(remove_local, str(tmp_path / "missing"))
