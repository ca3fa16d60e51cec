import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


class Config:
    # Provide a safe development fallback to avoid 500s when SECRET_KEY is missing.
    SECRET_KEY = os.getenv('SECRET_KEY') or 'dev-secret-key-change-me'
    ENVIRONMENT = os.getenv('ENVIRONMENT', 'development')
    DATABASE_URL = os.getenv('DATABASE_URL')
    SQLALCHEMY_DATABASE_URI = DATABASE_URL or 'sqlite:///lens.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    AUTO_CREATE_TABLES = _flag('AUTO_CREATE_TABLES', 'true')

    # Tokens
    JWT_SECRET = os.getenv('JWT_SECRET') or SECRET_KEY
    JWT_REFRESH_SECRET = os.getenv('JWT_REFRESH_SECRET') or f'{JWT_SECRET}-refresh'
    JWT_ACCESS_EXPIRES = int(os.getenv('JWT_ACCESS_EXPIRES', 7 * 24 * 3600))
    JWT_REFRESH_EXPIRES = int(os.getenv('JWT_REFRESH_EXPIRES', 30 * 24 * 3600))
    AUTH_COOKIE_SECURE = ENVIRONMENT == 'production'
    BCRYPT_LOG_ROUNDS = int(os.getenv('BCRYPT_LOG_ROUNDS', 12))

    # Object storage. R2 is used only when every credential is present.
    R2_ACCOUNT_ID = os.getenv('R2_ACCOUNT_ID')
    R2_ACCESS_KEY_ID = os.getenv('R2_ACCESS_KEY_ID')
    R2_SECRET_ACCESS_KEY = os.getenv('R2_SECRET_ACCESS_KEY')
    R2_BUCKET_NAME = os.getenv('R2_BUCKET_NAME')
    R2_ENDPOINT = os.getenv('R2_ENDPOINT')
    R2_PUBLIC_URL = os.getenv('R2_PUBLIC_URL')
    ENV_PREFIX = os.getenv('ENV_PREFIX') or ENVIRONMENT
    UPLOAD_FOLDER = os.getenv('UPLOAD_FOLDER', 'uploads')
    LOCAL_PUBLIC_URL = os.getenv('LOCAL_PUBLIC_URL', 'http://localhost:5000/uploads')
    PRESIGNED_URL_TTL = int(os.getenv('PRESIGNED_URL_TTL', 3600))

    # Uploads and image pipeline
    MAX_FILE_SIZE = int(os.getenv('MAX_FILE_SIZE', 10 * 1024 * 1024))
    MAX_FILES_PER_REQUEST = int(os.getenv('MAX_FILES_PER_REQUEST', 10))
    ALLOWED_IMAGE_TYPES = os.getenv(
        'ALLOWED_IMAGE_TYPES', 'image/jpeg,image/jpg,image/png,image/webp,image/gif'
    ).split(',')
    MAX_CONTENT_LENGTH = MAX_FILE_SIZE * MAX_FILES_PER_REQUEST + 1024 * 1024
    MAX_JSON_BODY = int(os.getenv('MAX_JSON_BODY', 1024 * 1024))
    IMAGE_MAX_WIDTH = int(os.getenv('IMAGE_MAX_WIDTH', 2048))
    IMAGE_MAX_HEIGHT = int(os.getenv('IMAGE_MAX_HEIGHT', 2048))
    IMAGE_QUALITY = int(os.getenv('IMAGE_QUALITY', 85))
    THUMBNAIL_SIZE = int(os.getenv('THUMBNAIL_SIZE', 300))
    THUMBNAIL_QUALITY = int(os.getenv('THUMBNAIL_QUALITY', 80))

    # Plans and moderation
    FREE_PLAN_PHOTO_LIMIT = int(os.getenv('FREE_PLAN_PHOTO_LIMIT', 30))
    FREE_PLAN_PORTFOLIO_LIMIT = int(os.getenv('FREE_PLAN_PORTFOLIO_LIMIT', 3))
    PHOTO_AUTO_APPROVE = _flag('PHOTO_AUTO_APPROVE')
    FRONTEND_URL = os.getenv('FRONTEND_URL', 'http://localhost:3000')

    # Background jobs and rate limiting
    REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_ENABLED = _flag('RATELIMIT_ENABLED', 'true')
    RATELIMIT_DEFAULT = os.getenv('RATELIMIT_DEFAULT', '100 per 15 minutes')

    # Forms validate JSON bodies; CSRF does not apply to bearer-token requests
    WTF_CSRF_ENABLED = False

    # Bootstrap account used by `flask user ensure-super-admin`
    SUPER_ADMIN_EMAIL = os.getenv('SUPER_ADMIN_EMAIL')
    SUPER_ADMIN_USERNAME = os.getenv('SUPER_ADMIN_USERNAME', 'superadmin')
    SUPER_ADMIN_PASSWORD = os.getenv('SUPER_ADMIN_PASSWORD')
