from conftest import bearer
from lens.extensions import db
from lens.models import User


def _hide_profile(app, username):
    with app.app_context():
        user = db.session.query(User).filter_by(username=username).one()
        user.public_profile = False
        db.session.commit()


def test_public_profile_includes_follow_counts(app, register):
    register("alice")

    response = app.test_client().get("/api/users/alice")

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["username"] == "alice"
    assert data["followers"] == 0
    assert "email" not in data


def test_own_profile_shows_private_fields(client, register):
    token = register("alice")["access_token"]

    data = client.get("/api/users/alice", headers=bearer(token)).get_json()["data"]

    assert data["email"] == "alice@example.com"


def test_follow_toggles(client, register):
    register("alice")
    bob = bearer(register("bob")["access_token"])

    first = client.post("/api/users/alice/follow", headers=bob)
    assert first.status_code == 200
    assert first.get_json()["data"]["following"] is True
    assert first.get_json()["data"]["followers"] == 1

    profile = client.get("/api/users/alice", headers=bob).get_json()["data"]
    assert profile["is_following"] is True

    followers = client.get("/api/users/alice/followers").get_json()["data"]["items"]
    assert [u["username"] for u in followers] == ["bob"]

    second = client.post("/api/users/alice/follow", headers=bob)
    assert second.get_json()["data"]["following"] is False
    assert second.get_json()["data"]["followers"] == 0


def test_cannot_follow_yourself(client, register):
    token = register("alice")["access_token"]

    response = client.post("/api/users/alice/follow", headers=bearer(token))

    assert response.status_code == 400
    assert response.get_json()["message"] == "You cannot follow yourself"


def test_private_profile_is_hidden_from_others(app, client, register):
    alice = bearer(register("alice")["access_token"])
    bob = bearer(register("bob")["access_token"])
    _hide_profile(app, "alice")

    assert client.get("/api/users/alice", headers=bob).status_code == 403
    assert client.get("/api/users/alice/photos", headers=bob).status_code == 403
    assert client.get("/api/users/alice", headers=alice).status_code == 200


def test_unknown_user_is_404(client):
    response = client.get("/api/users/nobody")

    assert response.status_code == 404
    assert response.get_json()["message"] == "User not found"


def test_search_skips_private_profiles(app, client, register):
    register("alice")
    register("alicia")
    _hide_profile(app, "alicia")

    items = client.get("/api/users/search?q=ali").get_json()["data"]["items"]

    assert [u["username"] for u in items] == ["alice"]


def test_user_photo_listing_hides_pending_from_others(app, client, register, upload):
    token = register("alice")["access_token"]
    upload(token)

    assert client.get("/api/users/alice/photos", headers=bearer(token)).get_json()["data"]["pagination"]["total"] == 1
    assert app.test_client().get("/api/users/alice/photos").get_json()["data"]["pagination"]["total"] == 0


def test_my_stats(client, register, upload):
    token = register("alice")["access_token"]
    upload(token)

    stats = client.get("/api/users/me/stats", headers=bearer(token)).get_json()["data"]

    assert stats["total_photos"] == 1
    assert stats["total_portfolios"] == 1
    assert stats["photos_by_status"]["pending"] == 1
    assert stats["limits"] == {"photos": 30, "portfolios": 3}
    assert stats["plan"] == "free"


def test_search_term_wildcards_match_literally(client, register):
    register("alice")
    register("bob")

    items = client.get("/api/users/search", query_string={"q": "%"}).get_json()["data"]["items"]

    assert items == []
