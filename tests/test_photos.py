import io

from PIL import Image
from sqlalchemy.exc import IntegrityError

from conftest import bearer, image_bytes
from lens.errors import StorageError
from lens.extensions import db
from lens.models import ModerationStatus, Photo, SubscriptionPlan, User, UserRole, normalize_tags
from lens.services import photos as photos_service
from lens.services.storage import LocalStorage, get_storage


def _approve_all(app):
    with app.app_context():
        db.session.query(Photo).update({Photo.moderation_status: ModerationStatus.APPROVED})
        db.session.commit()


def test_upload_resizes_into_bounding_box_and_makes_square_thumbnail(app, register, upload):
    token = register("alice")["access_token"]

    response = upload(token, image=image_bytes(1600, 800), title="Wide")

    assert response.status_code == 201
    photo = response.get_json()["data"]
    # 1600x800 scaled to fit 400x300 keeping 2:1
    assert (photo["width"], photo["height"]) == (400, 200)
    assert photo["moderation"]["status"] == "pending"
    assert len(photo["color_palette"]) == 1
    assert photo["color_palette"][0]["percentage"] == 100

    with app.app_context():
        storage = get_storage()
        main = Image.open(storage.path_for(photo["storage_key"]))
        thumb = Image.open(storage.path_for(photo["thumbnail_key"]))
        assert main.size == (400, 200)
        assert thumb.size == (64, 64)
        assert main.format == thumb.format == "JPEG"
        assert photo["thumbnail_key"].endswith("_thumb.jpg")
        assert photo["storage_key"].startswith(f"test/photos/{photo['owner']['id']}/")


def test_small_images_are_not_enlarged(register, upload):
    token = register("alice")["access_token"]

    photo = upload(token, image=image_bytes(120, 90)).get_json()["data"]

    assert (photo["width"], photo["height"]) == (120, 90)


def test_upload_rejects_wrong_type_and_garbage(register, upload):
    token = register("alice")["access_token"]

    wrong_type = upload(token, image=b"hello", filename="notes.txt", content_type="text/plain")
    assert wrong_type.status_code == 400
    assert "Invalid file type" in wrong_type.get_json()["message"]

    garbage = upload(token, image=b"definitely not a jpeg", filename="fake.jpg")
    assert garbage.status_code == 500
    assert garbage.get_json()["success"] is False


def test_upload_without_file(client, register):
    token = register("alice")["access_token"]

    response = client.post("/api/upload/photo", data={"title": "x"}, headers=bearer(token))

    assert response.status_code == 400
    assert response.get_json()["message"] == "No image file provided"


def test_upload_updates_owner_stats_and_title_from_filename(app, register, upload):
    data = register("alice")

    photo = upload(data["access_token"], filename="golden_hour-shot.jpg").get_json()["data"]

    assert photo["title"] == "golden hour shot"
    assert photo["alt_text"] == "golden hour shot"
    with app.app_context():
        assert db.session.get(User, data["user"]["id"]).total_photos == 1


def test_pending_and_private_photos_are_hidden_from_public(app, client, register, upload):
    alice = register("alice")
    bob = register("bob")
    pending = upload(alice["access_token"], title="Pending").get_json()["data"]

    anon = app.test_client()
    assert pending["id"] not in [p["id"] for p in anon.get("/api/photos").get_json()["data"]["items"]]
    assert anon.get(f"/api/photos/{pending['id']}").status_code == 403
    assert client.get(f"/api/photos/{pending['id']}", headers=bearer(bob["access_token"])).status_code == 403
    assert client.get(f"/api/photos/{pending['id']}", headers=bearer(alice["access_token"])).status_code == 200

    _approve_all(app)
    assert pending["id"] in [p["id"] for p in anon.get("/api/photos").get_json()["data"]["items"]]

    client.put(f"/api/photos/{pending['id']}", json={"is_public": False}, headers=bearer(alice["access_token"]))
    assert pending["id"] not in [p["id"] for p in anon.get("/api/photos").get_json()["data"]["items"]]
    assert anon.get(f"/api/photos/{pending['id']}").status_code == 403


def test_public_serialization_hides_storage_keys(app, register, upload):
    token = register("alice")["access_token"]
    photo_id = upload(token).get_json()["data"]["id"]
    _approve_all(app)

    public = app.test_client().get(f"/api/photos/{photo_id}").get_json()["data"]

    assert "storage_key" not in public
    assert "moderation" not in public


def test_free_plan_photo_quota(app, register, upload):
    app.config["FREE_PLAN_PHOTO_LIMIT"] = 2
    token = register("alice")["access_token"]

    assert upload(token).status_code == 201
    assert upload(token).status_code == 201
    response = upload(token)
    assert response.status_code == 403
    assert "Free plan allows up to 2 photos" in response.get_json()["message"]


def test_pro_plan_is_never_rejected_for_quota(app, make_user, upload):
    app.config["FREE_PLAN_PHOTO_LIMIT"] = 1
    token = make_user("pro", plan=SubscriptionPlan.PRO)["access_token"]

    for _ in range(3):
        assert upload(token).status_code == 201


def test_staff_uploads_are_auto_approved(make_user, upload):
    token = make_user("boss", role=UserRole.ADMIN)["access_token"]

    photo = upload(token).get_json()["data"]

    assert photo["moderation"]["status"] == "approved"


def test_only_staff_can_feature(client, register, upload):
    token = register("alice")["access_token"]
    photo_id = upload(token).get_json()["data"]["id"]

    response = client.put(f"/api/photos/{photo_id}", json={"is_featured": True}, headers=bearer(token))

    assert response.status_code == 403


def test_update_photo_metadata(client, register, upload):
    token = register("alice")["access_token"]
    photo_id = upload(token).get_json()["data"]["id"]

    response = client.put(
        f"/api/photos/{photo_id}",
        json={"title": "Harbour", "category": "landscape", "tags": ["Sea", "boats"], "allow_download": False},
        headers=bearer(token),
    )

    assert response.status_code == 200
    photo = response.get_json()["data"]
    assert photo["title"] == "Harbour"
    assert photo["category"] == "landscape"
    assert photo["tags"] == ["boats", "sea"]
    assert photo["settings"]["allow_download"] is False


def test_engagement_counters(app, client, register, upload):
    alice = register("alice")
    bob = register("bob")
    photo_id = upload(alice["access_token"]).get_json()["data"]["id"]
    _approve_all(app)
    bob_headers = bearer(bob["access_token"])

    client.get(f"/api/photos/{photo_id}", headers=bob_headers)
    client.get(f"/api/photos/{photo_id}", headers=bearer(alice["access_token"]))
    assert client.post(f"/api/photos/{photo_id}/like", headers=bob_headers).get_json()["data"]["likes"] == 1

    download = client.post(f"/api/photos/{photo_id}/download", headers=bob_headers).get_json()["data"]
    assert download["downloads"] == 1
    assert "token=" in download["download_url"]

    share = client.post(f"/api/photos/{photo_id}/share").get_json()["data"]
    assert share["share_url"].endswith(f"/photo/{photo_id}")

    analytics = client.get(f"/api/photos/{photo_id}/analytics", headers=bearer(alice["access_token"])).get_json()["data"]
    assert analytics["views"] == 1
    assert analytics["likes"] == 1
    assert analytics["shares"] == 1

    with app.app_context():
        owner = db.session.get(User, alice["user"]["id"])
        assert (owner.total_views, owner.total_likes) == (1, 1)


def test_download_disabled_for_others(app, client, register, upload):
    alice = register("alice")
    bob = register("bob")
    photo_id = upload(alice["access_token"]).get_json()["data"]["id"]
    _approve_all(app)
    client.put(f"/api/photos/{photo_id}", json={"allow_download": False}, headers=bearer(alice["access_token"]))

    assert client.post(f"/api/photos/{photo_id}/download", headers=bearer(bob["access_token"])).status_code == 403
    assert client.post(f"/api/photos/{photo_id}/download", headers=bearer(alice["access_token"])).status_code == 200


def test_reorder_photos_within_portfolio(client, register, upload):
    data = register("alice")
    token = data["access_token"]
    first = upload(token, title="First").get_json()["data"]["id"]
    second = upload(token, title="Second").get_json()["data"]["id"]
    portfolio_id = data["default_portfolio"]["id"]

    response = client.put(
        "/api/photos/reorder",
        json={"portfolio_id": portfolio_id, "photo_ids": [second, first]},
        headers=bearer(token),
    )
    assert response.status_code == 200

    items = client.get(f"/api/photos/my?portfolio={portfolio_id}", headers=bearer(token)).get_json()["data"]["items"]
    assert [p["id"] for p in items] == [second, first]

    bad = client.put(
        "/api/photos/reorder",
        json={"portfolio_id": portfolio_id, "photo_ids": ["missing"]},
        headers=bearer(token),
    )
    assert bad.status_code == 400


def test_delete_photo_removes_files_and_stats(app, client, register, upload):
    data = register("alice")
    token = data["access_token"]
    photo = upload(token).get_json()["data"]

    with app.app_context():
        main_path = get_storage().path_for(photo["storage_key"])
    assert main_path.is_file()

    assert client.delete(f"/api/upload/photo/{photo['id']}", headers=bearer(token)).status_code == 200

    assert not main_path.exists()
    assert client.get(f"/api/photos/{photo['id']}", headers=bearer(token)).status_code == 404
    with app.app_context():
        assert db.session.get(User, data["user"]["id"]).total_photos == 0


def test_photo_can_be_created_via_photos_collection(client, register):
    token = register("alice")["access_token"]

    response = client.post(
        "/api/photos",
        data={"image": (io.BytesIO(image_bytes()), "a.jpg", "image/jpeg"), "tags": "one,two"},
        headers=bearer(token),
        content_type="multipart/form-data",
    )

    assert response.status_code == 201
    assert response.get_json()["data"]["tags"] == ["one", "two"]


def test_multiple_upload_reports_failures(client, register):
    token = register("alice")["access_token"]

    response = client.post(
        "/api/upload/photos",
        data={
            "images": [
                (io.BytesIO(image_bytes()), "good.jpg", "image/jpeg"),
                (io.BytesIO(b"nope"), "bad.txt", "text/plain"),
            ]
        },
        headers=bearer(token),
        content_type="multipart/form-data",
    )

    assert response.status_code == 201
    data = response.get_json()["data"]
    assert len(data["uploaded"]) == 1
    assert data["failed"][0]["filename"] == "bad.txt"


def test_png_with_transparency_is_flattened(register, upload):
    token = register("alice")["access_token"]
    png = image_bytes(50, 50, color=(0, 0, 0, 0), fmt="PNG", mode="RGBA")

    photo = upload(token, image=png, filename="clear.png", content_type="image/png").get_json()["data"]

    assert photo["color_palette"][0]["color"] == "rgb(255,255,255)"


def test_avatar_upload_replaces_previous(app, client, register):
    data = register("alice")
    headers = bearer(data["access_token"])

    def _send():
        return client.post(
            "/api/upload/avatar",
            data={"avatar": (io.BytesIO(image_bytes(900, 500)), "me.jpg", "image/jpeg")},
            headers=headers,
            content_type="multipart/form-data",
        )

    first = _send().get_json()["data"]
    with app.app_context():
        user = db.session.get(User, data["user"]["id"])
        first_path = get_storage().path_for(user.avatar_key)
        assert Image.open(first_path).size == (400, 400)

    second = _send().get_json()["data"]
    assert second["avatar_url"] != first["avatar_url"]
    assert not first_path.exists()


def test_presigned_upload_round_trip_on_local_storage(client, register):
    token = register("alice")["access_token"]

    response = client.post(
        "/api/upload/presigned-url",
        json={"filename": "my shot.png", "content_type": "image/png"},
        headers=bearer(token),
    )
    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["key"].endswith("_my_shot.png")

    upload_path = data["upload_url"].replace("http://localhost", "")
    put = client.put(upload_path, data=image_bytes(fmt="PNG"), content_type="image/png")
    assert put.status_code == 200

    served = client.get(data["public_url"].replace("http://localhost", ""))
    assert served.status_code == 200
    assert served.data[:4] == b"\x89PNG"

    tampered = client.put(upload_path.split("?")[0] + "?token=bogus", data=b"x", content_type="image/png")
    assert tampered.status_code == 403


def test_presigned_upload_rejects_bad_type(client, register):
    token = register("alice")["access_token"]

    response = client.post(
        "/api/upload/presigned-url",
        json={"filename": "x.exe", "content_type": "application/octet-stream"},
        headers=bearer(token),
    )

    assert response.status_code == 400


def test_download_url_requires_ownership(client, register, upload):
    alice = register("alice")
    bob = register("bob")
    key = upload(alice["access_token"]).get_json()["data"]["storage_key"]

    own = client.post("/api/upload/download-url", json={"key": key}, headers=bearer(alice["access_token"]))
    assert own.status_code == 200
    other = client.post("/api/upload/download-url", json={"key": key}, headers=bearer(bob["access_token"]))
    assert other.status_code == 403


def test_upload_limits_and_config(client, register, upload):
    token = register("alice")["access_token"]
    upload(token)

    limits = client.get("/api/upload/limits", headers=bearer(token)).get_json()["data"]
    assert limits["photos"] == {"used": 1, "limit": 30}
    assert limits["portfolios"] == {"used": 1, "limit": 3}

    config = client.get("/api/upload/config").get_json()["data"]
    assert config["storage"] == "local"
    assert "image/jpeg" in config["allowed_types"]


def test_search_filters_and_invalid_sort(app, client, register, upload):
    token = register("alice")["access_token"]
    upload(token, title="Beach day", category="travel", tags="sea")
    upload(token, title="Portrait", category="portrait")
    _approve_all(app)

    by_category = client.get("/api/photos?category=travel").get_json()["data"]["items"]
    assert [p["title"] for p in by_category] == ["Beach day"]
    by_tag = client.get("/api/photos?tags=sea").get_json()["data"]["items"]
    assert [p["title"] for p in by_tag] == ["Beach day"]
    by_term = client.get("/api/photos?q=portrait").get_json()["data"]["items"]
    assert [p["title"] for p in by_term] == ["Portrait"]

    assert client.get("/api/photos?sort=random").status_code == 400
    assert client.get("/api/photos?limit=500").status_code == 400


def test_long_tags_sharing_a_prefix_collapse_into_one(client, register, upload):
    token = register("alice")["access_token"]

    response = upload(token, tags="x" * 60 + "," + "x" * 61)
    assert response.status_code == 201
    photo = response.get_json()["data"]
    assert photo["tags"] == ["x" * 50]

    response = client.put(
        f"/api/photos/{photo['id']}",
        json={"tags": ["a" * 55 + "1", "a" * 55 + "2", "Sea", "sea"]},
        headers=bearer(token),
    )
    assert response.status_code == 200
    assert response.get_json()["data"]["tags"] == ["a" * 50, "sea"]


def test_search_term_wildcards_match_literally(app, client, register, upload):
    token = register("alice")["access_token"]
    upload(token, title="100% natural")
    upload(token, title="Harbour")
    _approve_all(app)

    by_percent = client.get("/api/photos", query_string={"q": "%"}).get_json()["data"]["items"]
    assert [p["title"] for p in by_percent] == ["100% natural"]
    by_underscore = client.get("/api/photos", query_string={"q": "_"}).get_json()["data"]["items"]
    assert by_underscore == []


class ThumbnailFailingStorage(LocalStorage):
    def put(self, data, key, content_type, metadata=None):
        if key.endswith("_thumb.jpg"):
            raise StorageError("Failed to upload file to storage")
        return super().put(data, key, content_type, metadata)


def _stored_files(root):
    return [path for path in root.rglob("*") if path.is_file()]


def test_failed_thumbnail_upload_removes_main_object(app, register, upload, tmp_path):
    data = register("alice")
    root = tmp_path / "flaky"
    app.extensions["lens.storage"] = ThumbnailFailingStorage(root, "http://localhost/uploads", "secret")

    response = upload(data["access_token"])

    assert response.status_code == 500
    assert response.get_json()["message"] == "Failed to upload file to storage"
    assert _stored_files(root) == []
    with app.app_context():
        assert db.session.query(Photo).count() == 0
        assert db.session.get(User, data["user"]["id"]).total_photos == 0


def test_failed_database_write_removes_stored_objects(app, register, upload, monkeypatch):
    data = register("alice")

    def fail_stats(*args, **kwargs):
        raise IntegrityError("UPDATE user", {}, Exception("forced"))

    monkeypatch.setattr(photos_service, "adjust_user_stats", fail_stats)

    response = upload(data["access_token"])

    assert response.status_code == 500
    with app.app_context():
        assert _stored_files(get_storage().root) == []
        assert db.session.query(Photo).count() == 0


def test_tags_are_truncated_before_deduplication():
    assert normalize_tags(["x" * 60, "X" * 70, " Sea ", "sea", ""]) == ["x" * 50, "sea"]
