import pytest
from botocore.exceptions import ClientError

from lens.errors import AuthzError, StorageError
from lens.services.storage import (
    LocalStorage,
    R2Storage,
    build_key,
    delete_quietly,
    get_storage,
    r2_configured,
    thumbnail_key_for,
)


class FakeS3:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def _record(self, name, **kwargs):
        self.calls.append((name, kwargs))
        if self.fail:
            raise ClientError({"Error": {"Code": "500", "Message": "boom"}}, name)

    def put_object(self, **kwargs):
        self._record("PutObject", **kwargs)
        return {"ETag": '"abc123"'}

    def delete_object(self, **kwargs):
        self._record("DeleteObject", **kwargs)
        return {}

    def generate_presigned_url(self, op, Params, ExpiresIn):
        self._record(op, Params=Params, ExpiresIn=ExpiresIn)
        return f"https://signed.example/{Params['Key']}?op={op}&ttl={ExpiresIn}"


def _r2(client):
    return R2Storage(
        access_key_id="key",
        secret_access_key="secret",
        bucket="photos",
        endpoint="https://acct.r2.cloudflarestorage.com/",
        public_url="https://cdn.example.com/",
        client=client,
    )


def test_build_key_layout(app):
    with app.app_context():
        key = build_key("photos", "user-1", "jpg", timestamp=1700000000000, random_id="abc")
        thumb = build_key("photos", "user-1", suffix="thumb", timestamp=1, random_id="r")
        client_side = build_key("photos", "user-1", filename="../My Photo.JPG", timestamp=1, random_id="r")

    assert key == "test/photos/user-1/1700000000000_abc.jpg"
    assert thumb == "test/photos/user-1/1_r_thumb.jpg"
    assert client_side == "test/photos/user-1/1_r_My_Photo.JPG"


def test_thumbnail_key_sits_next_to_main_key():
    assert thumbnail_key_for("test/photos/u/1_r.jpg") == "test/photos/u/1_r_thumb.jpg"


def test_r2_configured_needs_credentials_and_endpoint():
    full = {
        "R2_ACCESS_KEY_ID": "k",
        "R2_SECRET_ACCESS_KEY": "s",
        "R2_BUCKET_NAME": "b",
        "R2_ACCOUNT_ID": "acct",
    }

    assert r2_configured(full)
    assert not r2_configured({**full, "R2_SECRET_ACCESS_KEY": None})
    assert not r2_configured({**full, "R2_ACCOUNT_ID": None})


def test_app_without_credentials_uses_local_storage(app):
    with app.app_context():
        assert isinstance(get_storage(), LocalStorage)
        assert get_storage() is get_storage()


def test_local_put_and_delete(app, tmp_path):
    storage = LocalStorage(tmp_path, "http://files.test/uploads/", "secret")

    with app.app_context():
        stored = storage.put(b"data", "test/photos/u/1.jpg", "image/jpeg")
        assert stored.url == "http://files.test/uploads/test/photos/u/1.jpg"
        assert (tmp_path / "test/photos/u/1.jpg").read_bytes() == b"data"

        assert storage.delete("test/photos/u/1.jpg") is True
        assert not (tmp_path / "test/photos/u/1.jpg").exists()
        # deleting a missing object is not an error
        assert storage.delete("test/photos/u/1.jpg") is True


def test_local_storage_rejects_keys_outside_root(tmp_path):
    storage = LocalStorage(tmp_path / "root", "http://files.test", "secret")

    with pytest.raises(StorageError):
        storage.path_for("../escape.jpg")
    with pytest.raises(StorageError):
        storage.path_for("")


def test_local_signatures_bind_key_and_operation(app, tmp_path):
    storage = LocalStorage(tmp_path, "http://files.test", "secret")

    with app.app_context():
        token = storage.sign("a/b.jpg", "put", content_type="image/png")

        assert storage.verify(token, "a/b.jpg", "put")["ct"] == "image/png"
        with pytest.raises(AuthzError):
            storage.verify(token, "a/other.jpg", "put")
        with pytest.raises(AuthzError):
            storage.verify(token, "a/b.jpg", "get")
        with pytest.raises(AuthzError):
            LocalStorage(tmp_path, "http://files.test", "other").verify(token, "a/b.jpg", "put")

        url = storage.presigned_download("a/b.jpg")
        assert url.startswith("http://files.test/a/b.jpg?token=")


def test_r2_put_returns_public_url_and_etag(app):
    client = FakeS3()
    storage = _r2(client)

    with app.app_context():
        stored = storage.put(b"x", "k/1.jpg", "image/jpeg", {"user-id": "u"})

    assert stored.url == "https://cdn.example.com/k/1.jpg"
    assert stored.etag == "abc123"
    name, kwargs = client.calls[0]
    assert name == "PutObject"
    assert kwargs["Bucket"] == "photos"
    assert kwargs["ContentType"] == "image/jpeg"
    assert kwargs["Metadata"] == {"user-id": "u"}


def test_r2_presigned_urls_use_configured_ttl(app):
    client = FakeS3()
    storage = _r2(client)

    with app.app_context():
        upload_url = storage.presigned_upload("k/1.jpg", "image/png", ttl=60)
        download_url = storage.presigned_download("k/1.jpg")

    assert upload_url.endswith("op=put_object&ttl=60")
    assert client.calls[0][1]["Params"]["ContentType"] == "image/png"
    assert download_url.endswith(f"ttl={app.config['PRESIGNED_URL_TTL']}")


def test_r2_errors_become_storage_errors(app):
    storage = _r2(FakeS3(fail=True))

    with app.app_context():
        with pytest.raises(StorageError):
            storage.put(b"x", "k/1.jpg", "image/jpeg")
        with pytest.raises(StorageError):
            storage.delete("k/1.jpg")


def test_delete_quietly_skips_failures(app):
    with app.app_context():
        app.extensions["lens.storage"] = _r2(FakeS3(fail=True))
        assert delete_quietly(["k/1.jpg", None, "k/2.jpg"]) == 0

        app.extensions["lens.storage"] = _r2(FakeS3())
        assert delete_quietly(["k/1.jpg", None, ""]) == 1
