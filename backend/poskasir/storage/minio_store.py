from __future__ import annotations

import io
from datetime import timedelta

from minio import Minio

from . import ObjectStorage
from ..errors import StorageError


class MinioStorage(ObjectStorage):
    """Self-hosted MinIO. Share links are always presigned."""

    def __init__(self, client: Minio, bucket: str, expiry_seconds: int, logger):
        self.client = client
        self.bucket = bucket
        self.expiry = timedelta(seconds=expiry_seconds)
        self.logger = logger

    @classmethod
    def from_config(cls, config, logger) -> "MinioStorage":
        client = Minio(
            config["MINIO_ENDPOINT"],
            access_key=config["MINIO_ACCESS_KEY"],
            secret_key=config["MINIO_SECRET_KEY"],
            secure=config["MINIO_USE_SSL"],
            region="us-east-1",
        )
        storage = cls(
            client=client,
            bucket=config["MINIO_BUCKET"],
            expiry_seconds=config["MINIO_EXPIRY_SECONDS"],
            logger=logger,
        )
        storage.ensure_bucket()
        return storage

    def ensure_bucket(self) -> None:
        """Create the bucket when missing. Startup keeps going if MinIO is unreachable."""
        try:
            if not self.client.bucket_exists(bucket_name=self.bucket):
                self.client.make_bucket(bucket_name=self.bucket)
                self.logger.info("Created MinIO bucket %s", self.bucket)
        except Exception:
            self.logger.exception("Could not verify MinIO bucket %s at startup", self.bucket)

    def upload_file(self, key: str, data: bytes, content_type: str) -> str:
        try:
            self.client.put_object(
                bucket_name=self.bucket,
                object_name=key,
                data=io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except Exception as exc:
            self.logger.error("Failed to upload %s to MinIO: %s", key, exc)
            raise StorageError("Failed to upload file") from exc
        return self.get_file_share_link(key)

    def get_file_share_link(self, key: str) -> str:
        try:
            return self.client.presigned_get_object(
                bucket_name=self.bucket,
                object_name=key,
                expires=self.expiry,
            )
        except Exception as exc:
            self.logger.error("Failed to presign %s on MinIO: %s", key, exc)
            raise StorageError("Failed to create share link") from exc

    def bucket_exists(self) -> bool:
        try:
            return self.client.bucket_exists(bucket_name=self.bucket)
        except Exception as exc:
            self.logger.error("Failed to check MinIO bucket %s: %s", self.bucket, exc)
            raise StorageError("Failed to check bucket") from exc
