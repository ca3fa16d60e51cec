import pytest

from conftest import PASSWORD, bearer
from lens.errors import ValidationError
from lens.extensions import db
from lens.models import ModerationStatus, Photo, Portfolio, User, UserRole
from lens.services import users


def test_regular_user_cannot_reach_admin_routes(client, register):
    token = register("alice")["access_token"]

    response = client.get("/api/admin/dashboard", headers=bearer(token))

    assert response.status_code == 403
    assert "not authorized" in response.get_json()["message"]


def test_approve_makes_photo_public_and_review_is_final(app, client, register, make_user, upload):
    token = register("alice")["access_token"]
    admin = bearer(make_user("mod", role=UserRole.ADMIN)["access_token"])
    photo_id = upload(token, title="Waiting").get_json()["data"]["id"]

    pending = client.get("/api/admin/photos/pending", headers=admin).get_json()["data"]["items"]
    assert [p["id"] for p in pending] == [photo_id]

    response = client.post(f"/api/admin/photos/{photo_id}/approve", json={"notes": "nice"}, headers=admin)
    assert response.status_code == 200
    assert response.get_json()["data"]["moderation"]["status"] == "approved"

    public = app.test_client().get("/api/photos").get_json()["data"]["items"]
    assert photo_id in [p["id"] for p in public]

    again = client.post(f"/api/admin/photos/{photo_id}/reject", json={"reason": "late"}, headers=admin)
    assert again.status_code == 400
    assert "already been reviewed" in again.get_json()["message"]


def test_reject_requires_reason_and_records_it(app, client, register, make_user, upload):
    token = register("alice")["access_token"]
    admin = bearer(make_user("mod", role=UserRole.ADMIN)["access_token"])
    photo_id = upload(token).get_json()["data"]["id"]

    assert client.post(f"/api/admin/photos/{photo_id}/reject", json={}, headers=admin).status_code == 400

    response = client.post(f"/api/admin/photos/{photo_id}/reject", json={"reason": "Blurry"}, headers=admin)
    assert response.status_code == 200

    with app.app_context():
        photo = db.session.get(Photo, photo_id)
        assert photo.moderation_status == ModerationStatus.REJECTED
        assert photo.rejection_reason == "Blurry"
        assert photo.reviewed_by is not None

    rejected = client.get("/api/admin/photos/status/rejected", headers=admin).get_json()["data"]["items"]
    assert [p["id"] for p in rejected] == [photo_id]
    assert client.get("/api/admin/photos/status/bogus", headers=admin).status_code == 400


def test_moderation_counts_and_stats(client, register, make_user, upload):
    token = register("alice")["access_token"]
    admin = bearer(make_user("mod", role=UserRole.ADMIN)["access_token"])
    upload(token)
    upload(token)

    counts = client.get("/api/admin/photos/stats", headers=admin).get_json()["data"]
    assert counts["pending"] == 2
    assert counts["total"] == 2

    dashboard = client.get("/api/admin/dashboard", headers=admin).get_json()["data"]
    assert dashboard["users"]["total"] == 2
    assert dashboard["portfolios"] == 2

    photo_stats = client.get("/api/admin/stats/photos", headers=admin).get_json()["data"]
    assert photo_stats["uploaded_last_7_days"] == 2
    assert photo_stats["by_category"]["other"] == 2


def test_photo_delete_is_super_admin_only(client, register, make_user, upload):
    token = register("alice")["access_token"]
    admin = bearer(make_user("mod", role=UserRole.ADMIN)["access_token"])
    root = bearer(make_user("root", role=UserRole.SUPER_ADMIN)["access_token"])
    photo_id = upload(token).get_json()["data"]["id"]

    assert client.delete(f"/api/admin/photos/{photo_id}", headers=admin).status_code == 403
    assert client.delete(f"/api/admin/photos/{photo_id}", headers=root).status_code == 200
    assert client.get(f"/api/admin/photos/{photo_id}", headers=root).status_code == 404


def test_admins_only_see_plain_users(client, register, make_user):
    register("alice")
    admin = bearer(make_user("mod", role=UserRole.ADMIN)["access_token"])
    root = bearer(make_user("root", role=UserRole.SUPER_ADMIN)["access_token"])

    seen_by_admin = {u["username"] for u in client.get("/api/admin/users", headers=admin).get_json()["data"]["items"]}
    seen_by_root = {u["username"] for u in client.get("/api/admin/users", headers=root).get_json()["data"]["items"]}

    assert seen_by_admin == {"alice"}
    assert seen_by_root == {"alice", "mod"}


def test_super_admin_creates_staff_and_changes_roles(client, make_user):
    root = bearer(make_user("root", role=UserRole.SUPER_ADMIN)["access_token"])

    created = client.post(
        "/api/admin/users",
        json={"username": "helper", "email": "helper@example.com", "password": PASSWORD},
        headers=root,
    )
    assert created.status_code == 201
    helper = created.get_json()["data"]
    assert helper["role"] == "admin"

    response = client.put(f"/api/admin/users/{helper['id']}/role", json={"role": "user"}, headers=root)
    assert response.status_code == 200
    assert response.get_json()["data"]["role"] == "user"

    assert client.put(f"/api/admin/users/{helper['id']}/role", json={"role": "king"}, headers=root).status_code == 400


def test_last_super_admin_is_protected(app, client, make_user):
    root_data = make_user("root", role=UserRole.SUPER_ADMIN)
    root = bearer(root_data["access_token"])
    root_id = root_data["user"]["id"]

    demote = client.put(f"/api/admin/users/{root_id}/role", json={"role": "admin"}, headers=root)
    assert demote.status_code == 400
    assert demote.get_json()["message"] == "Cannot remove the last super admin"

    deactivate = client.put(f"/api/admin/users/{root_id}/status", json={"is_active": False}, headers=root)
    assert deactivate.status_code == 400

    assert client.delete(f"/api/admin/users/{root_id}", headers=root).status_code == 403

    with app.app_context():
        user = db.session.get(User, root_id)
        assert user.role == UserRole.SUPER_ADMIN
        assert user.active is True


def test_status_toggle_blocks_login(client, register, make_user):
    alice = register("alice")
    admin = bearer(make_user("mod", role=UserRole.ADMIN)["access_token"])

    response = client.put(f"/api/admin/users/{alice['user']['id']}/status", headers=admin)
    assert response.status_code == 200
    assert response.get_json()["data"]["is_active"] is False

    login = client.post("/api/auth/login", json={"identifier": "alice", "password": PASSWORD})
    assert login.status_code == 401

    again = client.put(f"/api/admin/users/{alice['user']['id']}/status", json={"is_active": True}, headers=admin)
    assert again.get_json()["data"]["is_active"] is True


def test_admin_cannot_change_other_staff_status(client, make_user):
    first = make_user("mod", role=UserRole.ADMIN)
    second = make_user("mod2", role=UserRole.ADMIN)

    response = client.put(
        f"/api/admin/users/{second['user']['id']}/status", headers=bearer(first["access_token"])
    )

    assert response.status_code == 403


def test_deleting_user_cascades_to_portfolios_and_photos(app, client, register, make_user, upload):
    alice = register("alice")
    root = bearer(make_user("root", role=UserRole.SUPER_ADMIN)["access_token"])
    upload(alice["access_token"])
    client.post("/api/portfolios", json={"title": "Extra"}, headers=bearer(alice["access_token"]))

    response = client.delete(f"/api/admin/users/{alice['user']['id']}", headers=root)
    assert response.status_code == 200

    with app.app_context():
        user_id = alice["user"]["id"]
        assert db.session.get(User, user_id) is None
        assert db.session.query(Portfolio).filter_by(user_id=user_id).count() == 0
        assert db.session.query(Photo).filter_by(user_id=user_id).count() == 0


def test_self_delete_account_cascades(app, client, register, upload):
    alice = register("alice")
    upload(alice["access_token"])

    wrong = client.delete("/api/auth/me", json={"password": "Nope1234"}, headers=bearer(alice["access_token"]))
    assert wrong.status_code == 400

    response = client.delete("/api/auth/me", json={"password": PASSWORD}, headers=bearer(alice["access_token"]))
    assert response.status_code == 200

    with app.app_context():
        assert db.session.query(Photo).count() == 0
        assert db.session.query(Portfolio).count() == 0


def test_fix_stats_recomputes_counters(app, client, register, make_user, upload):
    alice = register("alice")
    root = bearer(make_user("root", role=UserRole.SUPER_ADMIN)["access_token"])
    upload(alice["access_token"])

    with app.app_context():
        user = db.session.get(User, alice["user"]["id"])
        user.total_photos = 42
        db.session.commit()

    response = client.post("/api/admin/fix-stats", headers=root)
    assert response.status_code == 200
    assert response.get_json()["data"]["updated"] == 1

    with app.app_context():
        assert db.session.get(User, alice["user"]["id"]).total_photos == 1

    # idempotent
    assert client.post("/api/admin/fix-stats", headers=root).get_json()["data"]["updated"] == 0


def test_cli_super_admin_and_stats_commands(app):
    runner = app.test_cli_runner()
    app.config.update(SUPER_ADMIN_EMAIL=None, SUPER_ADMIN_PASSWORD=None, SUPER_ADMIN_USERNAME="superadmin")

    result = runner.invoke(args=["user", "ensure-super-admin"])
    assert "SUPER_ADMIN_EMAIL and SUPER_ADMIN_PASSWORD must be set" in result.output

    app.config.update(SUPER_ADMIN_EMAIL="root@example.com", SUPER_ADMIN_PASSWORD="Rootpass1")
    result = runner.invoke(args=["user", "ensure-super-admin"])
    assert "created" in result.output

    result = runner.invoke(args=["user", "ensure-super-admin"])
    assert "already exists" in result.output

    result = runner.invoke(args=["user", "set-role", "--user", "superadmin", "--role", "user"])
    assert "Cannot remove the last super admin" in result.output

    result = runner.invoke(args=["stats", "recompute"])
    assert "0 user(s) updated" in result.output

    with app.app_context():
        user = db.session.query(User).filter_by(email="root@example.com").one()
        assert user.role == UserRole.SUPER_ADMIN


class FakeJob:
    id = "job-1"


class FakeQueueService:
    def __init__(self):
        self.enqueued = []

    def enqueue_stats_recompute(self, user_id=None):
        self.enqueued.append(user_id)
        return FakeJob()

    def get_job_status(self, job_id):
        if job_id != FakeJob.id:
            return None
        return {"id": job_id, "status": "finished", "result": 0, "created_at": None, "ended_at": None}


def test_background_fix_stats_and_job_status(app, client, make_user):
    root = bearer(make_user("root", role=UserRole.SUPER_ADMIN)["access_token"])
    queue = FakeQueueService()
    app.extensions["lens.queue"] = queue

    response = client.post("/api/admin/fix-stats?background=1", headers=root)
    assert response.status_code == 202
    assert response.get_json()["data"] == {"job_id": "job-1"}
    assert queue.enqueued == [None]

    status = client.get("/api/admin/jobs/job-1", headers=root)
    assert status.get_json()["data"]["status"] == "finished"
    assert client.get("/api/admin/jobs/missing", headers=root).status_code == 404


def test_last_super_admin_guard_in_services(app, make_user):
    root_id = make_user("root", role=UserRole.SUPER_ADMIN)["user"]["id"]

    with app.app_context():
        root = db.session.get(User, root_id)
        with pytest.raises(ValidationError):
            users.ensure_super_admin_remains(root, deactivate=True)
        with pytest.raises(ValidationError):
            users.set_role(root, root, UserRole.USER)
        with pytest.raises(ValidationError):
            users.delete_account(root)

        second = users.create_account(
            username="root2", email="root2@example.com", password=PASSWORD, role=UserRole.SUPER_ADMIN
        )
        users.set_role(second, root, UserRole.ADMIN)
        assert db.session.get(User, root_id).role == UserRole.ADMIN
