"""
Commissioning Report Editor
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name]())
"""

import os
import secrets

# Default SQLite path for local dev when no DATABASE_URL is set
# (relative SQLite paths resolve into the Flask instance folder)
_SQLITE_DEV = "sqlite:///commissioning_dev.db"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)

_MIB = 1024 * 1024


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # Capability tokens
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ACCESS_EXPIRES = int(os.getenv("JWT_ACCESS_EXPIRES", "3600"))

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Access gate: bootstrap shared edit password and the admin password
    # required to change it. Both are hashed before they touch the database.
    EDIT_PASSWORD = os.getenv("EDIT_PASSWORD", "")
    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")

    # Rate limit for credential endpoints
    AUTH_RATE_LIMIT = os.getenv("AUTH_RATE_LIMIT", "10/minute")

    # Reverse geocoding (Nominatim-compatible)
    GEOCODER_URL = os.getenv("GEOCODER_URL", "https://nominatim.openstreetmap.org/reverse")
    GEOCODER_TIMEOUT = float(os.getenv("GEOCODER_TIMEOUT", "10"))
    GEOCODER_USER_AGENT = os.getenv("GEOCODER_USER_AGENT", "commissioning-report/1.0")

    # Editor defaults (local cache, debounce, image normalization)
    LOCAL_STORAGE_KEY = "lge-sac-commissioning-report"
    SAVE_DEBOUNCE_MS = int(os.getenv("SAVE_DEBOUNCE_MS", "500"))
    STORAGE_WARNING_THRESHOLD = 5 * _MIB
    STORAGE_QUOTA = 10 * _MIB
    MAX_IMAGES_PER_ITEM = 10
    MAX_IMAGE_FILE_SIZE = 10 * _MIB
    IMAGE_MAX_DIMENSION = 1200
    IMAGE_JPEG_QUALITY = 70

    # Request bodies carry embedded images
    MAX_CONTENT_LENGTH = 32 * _MIB


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )
    EDIT_PASSWORD = os.getenv("EDIT_PASSWORD", "edit1234")
    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SECRET_KEY = "test-secret-key"
    EDIT_PASSWORD = "edit1234"
    ADMIN_PASSWORD = "admin123"
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
