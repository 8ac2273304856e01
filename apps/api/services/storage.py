import logging
from datetime import timedelta
from typing import Optional

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage

from workers.generator.errors import StorageError

LOGGER = logging.getLogger("aijobs.storage")


class BlobStore:
    """Google Cloud Storage bucket holding reference images and generated assets."""

    def __init__(self, client, bucket_name: str, url_prefix: Optional[str] = None):
        self._client = client
        self.bucket_name = bucket_name
        self._url_prefix = url_prefix

    @classmethod
    def from_settings(cls, settings) -> "BlobStore":
        client = storage.Client(project=settings.project_id) if settings.project_id else storage.Client()
        return cls(client, settings.assets_bucket, settings.assets_url_prefix)

    def _blob(self, path: str):
        return self._client.bucket(self.bucket_name).blob(path)

    def put(self, path: str, data: bytes, content_type: str) -> None:
        try:
            self._blob(path).upload_from_string(data, content_type=content_type)
        except (GoogleAPIError, GoogleAuthError) as e:
            raise StorageError(f"upload gs://{self.bucket_name}/{path} failed: {e}") from e
        LOGGER.info("uploaded asset", extra={"path": f"gs://{self.bucket_name}/{path}"})

    def get(self, path: str) -> bytes:
        try:
            return self._blob(path).download_as_bytes()
        except (GoogleAPIError, GoogleAuthError) as e:
            raise StorageError(f"download gs://{self.bucket_name}/{path} failed: {e}") from e

    def sign_url(self, path: str, ttl: int) -> str:
        try:
            return self._blob(path).generate_signed_url(
                version="v4", expiration=timedelta(seconds=ttl), method="GET"
            )
        except (GoogleAPIError, GoogleAuthError, AttributeError) as e:
            # AttributeError: credentials without a signing key
            raise StorageError(f"signing gs://{self.bucket_name}/{path} failed: {e}") from e

    def public_url(self, path: str) -> str:
        if self._url_prefix:
            return f"{self._url_prefix.rstrip('/')}/{path}"
        return f"https://storage.googleapis.com/{self.bucket_name}/{path}"

    def url_for(self, path: str, ttl: int = 0) -> str:
        if ttl > 0:
            return self.sign_url(path, ttl)
        return self.public_url(path)
