# Overview: Object storage contract and provider selection.

"""
Two interchangeable providers sit behind the same three operations:

- upload_file(key, data, content_type) -> shareable URL
- get_file_share_link(key) -> shareable URL (public domain or presigned)
- bucket_exists() -> bool (used by /healthz)

The active adapter is attached to the app as app.extensions["storage"];
None means uploads are disabled.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from flask import current_app

from ..errors import StorageError


class ObjectStorage(ABC):
    bucket: str

    @abstractmethod
    def upload_file(self, key: str, data: bytes, content_type: str) -> str:
        ...

    @abstractmethod
    def get_file_share_link(self, key: str) -> str:
        ...

    @abstractmethod
    def bucket_exists(self) -> bool:
        ...


def build_storage(config, logger) -> ObjectStorage | None:
    provider = config.get("STORAGE_PROVIDER") or ""
    if provider == "r2":
        from .r2 import R2Storage
        return R2Storage.from_config(config, logger)
    if provider == "minio":
        from .minio_store import MinioStorage
        return MinioStorage.from_config(config, logger)
    if provider:
        raise ValueError(f"Unknown STORAGE_PROVIDER: {provider!r}")
    logger.warning("STORAGE_PROVIDER not set; image uploads are disabled")
    return None


def get_storage() -> ObjectStorage:
    storage = current_app.extensions.get("storage")
    if storage is None:
        raise StorageError("Object storage is not configured")
    return storage


def get_optional_storage() -> ObjectStorage | None:
    return current_app.extensions.get("storage")
