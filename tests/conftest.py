import io

import pytest
from PIL import Image

from lens import create_app
from lens.config import Config
from lens.extensions import db
from lens.models import SubscriptionPlan, User, UserRole
from lens.services.users import create_account

PASSWORD = "Secret123"


@pytest.fixture()
def app(tmp_path):
    class TestConfig(Config):
        TESTING = True
        ENVIRONMENT = "test"
        ENV_PREFIX = "test"
        SQLALCHEMY_DATABASE_URI = "sqlite://"
        AUTO_CREATE_TABLES = False
        SECRET_KEY = "test-secret"
        JWT_SECRET = "test-jwt-secret"
        JWT_REFRESH_SECRET = "test-jwt-refresh-secret"
        BCRYPT_LOG_ROUNDS = 4
        RATELIMIT_ENABLED = False
        RATELIMIT_STORAGE_URI = "memory://"
        R2_ACCESS_KEY_ID = None
        R2_SECRET_ACCESS_KEY = None
        R2_BUCKET_NAME = None
        UPLOAD_FOLDER = str(tmp_path / "uploads")
        LOCAL_PUBLIC_URL = "http://localhost/uploads"
        IMAGE_MAX_WIDTH = 400
        IMAGE_MAX_HEIGHT = 300
        THUMBNAIL_SIZE = 64
        PHOTO_AUTO_APPROVE = False
        FREE_PLAN_PHOTO_LIMIT = 30
        FREE_PLAN_PORTFOLIO_LIMIT = 3

    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


def image_bytes(width=800, height=600, color=(200, 40, 40), fmt="JPEG", mode="RGB"):
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def register(client):
    """Register an account through the API and return the response data."""

    def _register(username, email=None, password=PASSWORD):
        response = client.post(
            "/api/auth/register",
            json={"username": username, "email": email or f"{username}@example.com", "password": password},
        )
        assert response.status_code == 201, response.get_json()
        return response.get_json()["data"]

    return _register


@pytest.fixture()
def login(client):
    def _login(identifier, password=PASSWORD):
        response = client.post("/api/auth/login", json={"identifier": identifier, "password": password})
        assert response.status_code == 200, response.get_json()
        return response.get_json()["data"]

    return _login


@pytest.fixture()
def make_user(app, login):
    """Create an account directly (any role or plan) and return its login data."""

    def _make_user(username, role=UserRole.USER, plan=SubscriptionPlan.FREE):
        with app.app_context():
            user = create_account(
                username=username, email=f"{username}@example.com", password=PASSWORD, role=role
            )
            user.subscription_plan = plan
            db.session.commit()
        return login(username)

    return _make_user


@pytest.fixture()
def upload(client):
    """Upload an image as the given token's owner and return the response."""

    def _upload(token, image=None, filename="photo.jpg", content_type="image/jpeg", **fields):
        data = {key: str(value) for key, value in fields.items()}
        data["image"] = (io.BytesIO(image if image is not None else image_bytes()), filename, content_type)
        return client.post(
            "/api/upload/photo",
            data=data,
            headers=bearer(token),
            content_type="multipart/form-data",
        )

    return _upload


def get_user(app, username):
    with app.app_context():
        user = db.session.query(User).filter_by(username=username).first()
        db.session.expunge_all()
        return user
