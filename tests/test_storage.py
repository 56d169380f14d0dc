"""
Tests for the local and S3 object storage backends
"""

import io
import pytest

from conftest import make_signature
from pumpdispatch.config import settings
from pumpdispatch.services import storage_service
from pumpdispatch.services.storage_service import LocalStorageService, S3StorageService, get_storage

class FakeS3Client:
    """Keeps objects in memory and records the calls made by the backend"""

    def __init__(self):
        self.objects = {}
        self.put_calls = []

    def put_object(self, Bucket, Key, Body, ContentType=None):
        self.put_calls.append({"Bucket": Bucket, "Key": Key, "ContentType": ContentType})
        self.objects[(Bucket, Key)] = Body
        return {"ETag": '"fake"'}

    def get_object(self, Bucket, Key):
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)])}

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        return f"https://{Params['Bucket']}.s3.test/{Params['Key']}?method={ClientMethod}&expires={ExpiresIn}"

class TestLocalStorage:
    """Test cases for the directory backend"""

    def test_upload_and_read(self, tmp_path):
        storage = LocalStorageService(root_dir=str(tmp_path), base_url="/files/")

        url = storage.upload_bytes("delivery_pdfs/7.pdf", b"%PDF-1.4")

        assert url == "/files/delivery_pdfs/7.pdf"
        assert (tmp_path / "delivery_pdfs" / "7.pdf").read_bytes() == b"%PDF-1.4"
        assert storage.read_bytes("delivery_pdfs/7.pdf") == b"%PDF-1.4"

    @pytest.mark.parametrize("key", ["../outside.png", "/etc/passwd", "signatures//x.png", ""])
    def test_keys_outside_root_rejected(self, tmp_path, key):
        storage = LocalStorageService(root_dir=str(tmp_path), base_url="/files")
        with pytest.raises(ValueError):
            storage.upload_bytes(key, b"data")

class TestS3Storage:
    """Test cases for the S3 backend"""

    def test_upload_returns_presigned_url(self):
        client = FakeS3Client()
        storage = S3StorageService(bucket="pump-files", client=client, public_base_url="", presign_seconds=600)

        url = storage.upload_data_url("signatures/12-driver.png", make_signature())

        assert url == "https://pump-files.s3.test/signatures/12-driver.png?method=get_object&expires=600"
        assert client.put_calls == [
            {"Bucket": "pump-files", "Key": "signatures/12-driver.png", "ContentType": "image/png"}
        ]
        assert storage.read_bytes("signatures/12-driver.png").startswith(b"\x89PNG")

    def test_public_base_url_skips_presigning(self):
        client = FakeS3Client()
        storage = S3StorageService(bucket="pump-files", client=client, public_base_url="https://cdn.test/")

        url = storage.upload_bytes("delivery_pdfs/3.pdf", b"%PDF-1.4")

        assert url == "https://cdn.test/delivery_pdfs/3.pdf"
        assert client.put_calls[0]["ContentType"] == "application/pdf"

    def test_bucket_required(self, monkeypatch):
        monkeypatch.setattr(settings, "S3_BUCKET", None)
        with pytest.raises(ValueError):
            S3StorageService(client=FakeS3Client())

    def test_invalid_key_rejected(self):
        storage = S3StorageService(bucket="pump-files", client=FakeS3Client(), public_base_url="")
        with pytest.raises(ValueError):
            storage.upload_bytes("../escape.png", b"data")

class TestBackendSelection:
    """Test cases for picking the backend from settings"""

    def test_local_is_default(self, monkeypatch):
        monkeypatch.setattr(settings, "STORAGE_BACKEND", "local")
        assert isinstance(get_storage(), LocalStorageService)

    def test_s3_backend_uses_bucket_settings(self, monkeypatch):
        client = FakeS3Client()
        monkeypatch.setattr(settings, "STORAGE_BACKEND", "s3")
        monkeypatch.setattr(settings, "S3_BUCKET", "pharmacy-bucket")
        monkeypatch.setattr(settings, "S3_PUBLIC_BASE_URL", None)
        monkeypatch.setattr(settings, "S3_PRESIGN_SECONDS", 120)
        monkeypatch.setattr(storage_service, "_s3_client", lambda region: client)

        storage = get_storage()

        assert isinstance(storage, S3StorageService)
        assert storage.bucket == "pharmacy-bucket"
        assert storage.upload_bytes("a/b.pdf", b"x").endswith("?method=get_object&expires=120")

    def test_unknown_backend(self, monkeypatch):
        monkeypatch.setattr(settings, "STORAGE_BACKEND", "ftp")
        with pytest.raises(ValueError):
            get_storage()
