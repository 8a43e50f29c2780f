"""
HTTP layer tests.

The app runs against an in-memory adapter injected through
``dependency_overrides``; no bucket or network is involved.
"""

import base64
import inspect
from urllib.parse import urlencode

import httpx
import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from fastapi import status
from fastapi.testclient import TestClient

from ossadapter.api import dependencies
from ossadapter.api.dependencies import get_adapter, get_callback_verifier, reset_dependencies
from ossadapter.api.routes import files, health, uploads
from ossadapter.config.settings import Settings, get_settings
from ossadapter.core.errors import DeleteFailed, InvalidArgument, ReadFailed
from ossadapter.core.models import BucketProfile
from ossadapter.infrastructure.storage.buckets import create_adapter
from ossadapter.infrastructure.storage.callback import CallbackVerifier
from ossadapter.main import create_app, storage_error_status

API_KEY = "test-key"
HEADERS = {"X-API-Key": API_KEY}
KEY_URL = "https://gosspublic.alicdn.com/callback_pub_key_v1.pem"
CALLBACK_PATH = "/api/v1/uploads/callback"


@pytest.fixture(scope="module")
def private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, api_keys=API_KEY, oss_mock_mode=True, oss_bucket="demo")


@pytest.fixture
def adapter(private_key):
    pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=pem))
    verifier = CallbackVerifier(http_client=httpx.Client(transport=transport))

    main = BucketProfile.create("ak", "sk", "oss-cn-beijing.aliyuncs.com", "demo")
    media = BucketProfile.create("ak", "sk", "oss-cn-beijing.aliyuncs.com", "media")
    return create_adapter(main, buckets={"media": media}, mock_mode=True, verifier=verifier)


@pytest.fixture
def client(settings, adapter):
    reset_dependencies()
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_adapter] = lambda: adapter
    with TestClient(app) as test_client:
        yield test_client
    reset_dependencies()


# ---------------------------------------------------------------------------
# Health Tests
# ---------------------------------------------------------------------------

class TestHealth:

    def test_liveness(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["details"] == {"mock_mode": True}

    def test_readiness(self, client):
        response = client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_not_ready_when_storage_fails(self, client, adapter):
        adapter.client.fail_on("list_objects_v2")
        response = client.get("/health/ready")
        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["status"] == "not_ready"


# ---------------------------------------------------------------------------
# Upload Policy Tests
# ---------------------------------------------------------------------------

class TestUploadPolicy:

    def test_requires_api_key(self, client):
        assert client.post("/api/v1/uploads/policy", json={}).status_code == 403
        bad = client.post("/api/v1/uploads/policy", json={}, headers={"X-API-Key": "wrong"})
        assert bad.status_code == 403

    def test_returns_browser_fields(self, client):
        response = client.post(
            "/api/v1/uploads/policy",
            json={"prefix": "avatars/", "callback_url": "https://app.example.com/cb", "custom_data": {"user": 7}},
            headers=HEADERS,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["accessid"] == "ak"
        assert data["host"] == "http://demo.oss-cn-beijing.aliyuncs.com/"
        assert data["dir"] == "avatars/"
        assert data["callback-var"] == {"x:user": "7"}
        assert data["callback"]

    def test_named_bucket(self, client):
        response = client.post("/api/v1/uploads/policy", json={"bucket": "media"}, headers=HEADERS)
        assert response.json()["host"] == "http://media.oss-cn-beijing.aliyuncs.com/"

    def test_unknown_bucket_is_a_bad_request(self, client):
        response = client.post("/api/v1/uploads/policy", json={"bucket": "nope"}, headers=HEADERS)
        assert response.status_code == 400
        assert "bucket does not exist" in response.json()["detail"]

    def test_expire_must_be_positive(self, client):
        response = client.post("/api/v1/uploads/policy", json={"expire": 0}, headers=HEADERS)
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Upload Callback Tests
# ---------------------------------------------------------------------------

class TestUploadCallback:

    BODY = urlencode({"bucket": "demo", "filename": "avatars/a.png", "size": "10"}).encode()

    def signed_headers(self, private_key, body: bytes) -> dict[str, str]:
        signature = private_key.sign(
            CALLBACK_PATH.encode() + b"\n" + body,
            padding.PKCS1v15(),
            hashes.MD5(),
        )
        return {
            "authorization": base64.b64encode(signature).decode(),
            "x-oss-pub-key-url": base64.b64encode(KEY_URL.encode()).decode(),
            "content-type": "application/x-www-form-urlencoded",
        }

    def test_verified_callback(self, client, private_key):
        response = client.post(
            CALLBACK_PATH,
            content=self.BODY,
            headers=self.signed_headers(private_key, self.BODY),
        )
        assert response.status_code == 200
        assert response.json()["data"]["filename"] == "avatars/a.png"

    def test_forged_callback(self, client, private_key):
        headers = self.signed_headers(private_key, self.BODY)
        response = client.post(CALLBACK_PATH, content=self.BODY + b"&size=99", headers=headers)
        assert response.status_code == 403

    def test_unsigned_callback(self, client):
        assert client.post(CALLBACK_PATH, content=self.BODY).status_code == 403


# ---------------------------------------------------------------------------
# File Tests
# ---------------------------------------------------------------------------

class TestFiles:

    def test_list_directory(self, client, adapter):
        adapter.write("docs/a.txt", b"hello")
        adapter.write("docs/img/b.png", b"x")

        response = client.get("/api/v1/files", params={"path": "docs"}, headers=HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert [(e["path"], e["type"]) for e in data["entries"]] == [
            ("docs/a.txt", "file"),
            ("docs/img", "dir"),
        ]

    def test_recursive_listing(self, client, adapter):
        adapter.write("docs/img/b.png", b"x")
        response = client.get("/api/v1/files", params={"path": "docs", "recursive": True}, headers=HEADERS)
        assert [e["path"] for e in response.json()["entries"]] == ["docs/img", "docs/img/b.png"]

    def test_listing_failure_is_a_bad_gateway(self, client, adapter):
        adapter.client.fail_on("list_objects_v2")
        response = client.get("/api/v1/files", headers=HEADERS)
        assert response.status_code == 502

    def test_public_url(self, client):
        response = client.get("/api/v1/files/url", params={"path": "a/b.png"}, headers=HEADERS)
        assert response.json() == {
            "path": "a/b.png",
            "url": "http://demo.oss-cn-beijing.aliyuncs.com/a/b.png",
            "signed_url": None,
            "expires_in": None,
        }

    def test_signed_url(self, client):
        response = client.get("/api/v1/files/url", params={"path": "a.png", "ttl": 300}, headers=HEADERS)
        data = response.json()
        assert data["expires_in"] == 300
        assert "Expires=300" in data["signed_url"]


class TestErrorMapping:

    def test_status_codes(self):
        assert storage_error_status(InvalidArgument("bad")) == 400
        assert storage_error_status(ReadFailed("gone", code="NoSuchKey")) == 404
        assert storage_error_status(DeleteFailed("boom", code="InternalError")) == 502


# ---------------------------------------------------------------------------
# Lifecycle Tests
# ---------------------------------------------------------------------------


class TestLifecycle:

    def test_blocking_handlers_run_in_threadpool(self):
        # Plain def handlers are dispatched off the event loop by FastAPI
        for handler in (files.list_files, files.file_url, uploads.create_policy, health.readiness_check):
            assert not inspect.iscoroutinefunction(handler), handler.__name__

    def test_reset_closes_callback_verifier(self, settings):
        reset_dependencies()
        verifier = get_callback_verifier(settings)
        http_client = verifier._http

        reset_dependencies()

        assert http_client.is_closed
        assert dependencies._callback_verifier is None

    def test_shutdown_closes_callback_verifier(self, settings):
        reset_dependencies()
        app = create_app()
        app.dependency_overrides[get_settings] = lambda: settings
        with TestClient(app):
            verifier = get_callback_verifier(settings)
        assert verifier._http.is_closed
        assert dependencies._callback_verifier is None
