# backend/poskasir/config.py
from __future__ import annotations
import os
from types import MappingProxyType


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _database_uri() -> str:
    explicit = os.environ.get("DATABASE_URL")
    if explicit:
        return explicit

    host = os.environ.get("DB_HOST")
    if host:
        user = os.environ.get("DB_USER", "postgres")
        password = os.environ.get("DB_PASSWORD", "")
        port = os.environ.get("DB_PORT", "5432")
        name = os.environ.get("DB_NAME", "poskasir")
        sslmode = os.environ.get("DB_SSLMODE", "disable")
        return f"postgresql+psycopg://{user}:{password}@{host}:{port}/{name}?sslmode={sslmode}"

    # Local development fallback, stored in backend/instance/
    return "sqlite:///poskasir.sqlite3"


# Higher number outranks lower. Passed to the role gate at startup.
DEFAULT_ROLE_LEVELS = MappingProxyType({"admin": 3, "manager": 2, "cashier": 1})


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = _database_uri()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    APP_ENV = os.environ.get("APP_ENV", "development")
    APP_PORT = int(os.environ.get("APP_PORT", "8080"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_JSON_FORMAT = _env_bool("LOG_JSON_FORMAT")

    COOKIE_DOMAIN = os.environ.get("COOKIE_DOMAIN") or None
    WEB_FRONTEND_CROSS_ORIGIN = _env_bool("WEB_FRONTEND_CROSS_ORIGIN")
    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
        ).split(",")
        if origin.strip()
    ]

    JWT_SECRET = os.environ.get("JWT_SECRET", "dev-jwt-secret-change-me")
    JWT_DURATION_HOURS = int(os.environ.get("JWT_DURATION_HOURS", "24"))
    JWT_REFRESH_DURATION_DAYS = int(os.environ.get("JWT_REFRESH_DURATION_DAYS", "7"))
    JWT_ISSUER = os.environ.get("JWT_ISSUER", "poskasir")

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    ROLE_LEVELS = DEFAULT_ROLE_LEVELS

    # "r2", "minio", or empty to run without object storage
    STORAGE_PROVIDER = os.environ.get("STORAGE_PROVIDER", "").strip().lower()

    R2_ACCOUNT_ID = os.environ.get("R2_ACCOUNT_ID", "")
    R2_ACCESS_KEY = os.environ.get("R2_ACCESS_KEY", "")
    R2_SECRET_KEY = os.environ.get("R2_SECRET_KEY", "")
    R2_BUCKET = os.environ.get("R2_BUCKET", "pos-kasir")
    R2_PUBLIC_DOMAIN = os.environ.get("R2_PUBLIC_DOMAIN", "")
    R2_EXPIRY_SECONDS = int(os.environ.get("R2_EXPIRY_SECONDS", "3600"))

    MINIO_ENDPOINT = os.environ.get("MINIO_ENDPOINT", "localhost:9000")
    MINIO_ACCESS_KEY = os.environ.get("MINIO_ACCESS_KEY", "")
    MINIO_SECRET_KEY = os.environ.get("MINIO_SECRET_KEY", "")
    MINIO_BUCKET = os.environ.get("MINIO_BUCKET", "pos-kasir")
    MINIO_USE_SSL = _env_bool("MINIO_USE_SSL")
    MINIO_EXPIRY_SECONDS = int(os.environ.get("MINIO_EXPIRY_SECONDS", "3600"))

    MIDTRANS_SERVER_KEY = os.environ.get("MIDTRANS_SERVER_KEY", "")
    MIDTRANS_IS_PROD = _env_bool("MIDTRANS_IS_PROD")

    # Request bodies above this are refused by Flask; per-upload limits below are
    # checked in the routes so they can answer with a 400 envelope.
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024

    # Upload ceilings (bytes)
    PRODUCT_IMAGE_MAX_BYTES = 2 * 1024 * 1024
    AVATAR_MAX_BYTES = 3 * 1024 * 1024
    LOGO_MAX_BYTES = 5 * 1024 * 1024
