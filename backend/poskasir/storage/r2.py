from __future__ import annotations

import io
from datetime import timedelta

from minio import Minio

from . import ObjectStorage
from ..errors import StorageError


class R2Storage(ObjectStorage):
    """
    Cloudflare R2 through its S3-compatible endpoint.

    Share links use the public domain when one is configured, otherwise a
    presigned GET valid for expiry_seconds.
    """

    def __init__(self, client: Minio, bucket: str, public_domain: str, expiry_seconds: int, logger):
        self.client = client
        self.bucket = bucket
        self.public_domain = public_domain.rstrip("/")
        self.expiry = timedelta(seconds=expiry_seconds)
        self.logger = logger

    @classmethod
    def from_config(cls, config, logger) -> "R2Storage":
        endpoint = f"{config['R2_ACCOUNT_ID']}.r2.cloudflarestorage.com"
        client = Minio(
            endpoint,
            access_key=config["R2_ACCESS_KEY"],
            secret_key=config["R2_SECRET_KEY"],
            secure=True,
            # Fixed region keeps presigning local (no bucket-location lookup)
            region="auto",
        )
        logger.info("Created Cloudflare R2 client for bucket %s", config["R2_BUCKET"])
        return cls(
            client=client,
            bucket=config["R2_BUCKET"],
            public_domain=config.get("R2_PUBLIC_DOMAIN") or "",
            expiry_seconds=config["R2_EXPIRY_SECONDS"],
            logger=logger,
        )

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
            self.logger.error("Failed to upload %s to R2: %s", key, exc)
            raise StorageError("Failed to upload file") from exc
        return self.get_file_share_link(key)

    def get_file_share_link(self, key: str) -> str:
        if self.public_domain:
            return f"{self.public_domain}/{key}"
        try:
            return self.client.presigned_get_object(
                bucket_name=self.bucket,
                object_name=key,
                expires=self.expiry,
            )
        except Exception as exc:
            self.logger.error("Failed to presign %s on R2: %s", key, exc)
            raise StorageError("Failed to create share link") from exc

    def bucket_exists(self) -> bool:
        try:
            return self.client.bucket_exists(bucket_name=self.bucket)
        except Exception as exc:
            self.logger.error("Failed to check R2 bucket %s: %s", self.bucket, exc)
            raise StorageError("Failed to check bucket") from exc
