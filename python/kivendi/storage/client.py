"""Object store abstraction for ad and chat images.

Provides a clean interface for image storage with:
- Base64 image upload (chat frames, mobile ad publishing)
- Multipart file upload
- Best-effort deletion by public URL

Images are validated from their actual bytes (magic numbers), never from a
client-declared content type. Uploads are all-or-nothing per call: if one
image of a batch fails, the images already stored by that call are deleted
before the error propagates.
"""

import base64
import binascii
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from kivendi.config import Settings, get_settings
from kivendi.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_IMAGE_BYTES = 10 * 1024 * 1024

# (magic prefix, content type, extension)
IMAGE_SIGNATURES: tuple[tuple[bytes, str, str], ...] = (
    (b"\xff\xd8\xff", "image/jpeg", "jpg"),
    (b"\x89PNG\r\n\x1a\n", "image/png", "png"),
    (b"GIF87a", "image/gif", "gif"),
    (b"GIF89a", "image/gif", "gif"),
)


@dataclass(frozen=True)
class UploadFile:
    """Raw file bytes received from a multipart request."""

    content: bytes
    filename: str | None = None


@dataclass(frozen=True)
class ImageBlob:
    """Validated image ready for upload."""

    content: bytes
    content_type: str
    extension: str


class StorageError(Exception):
    """Storage operation error."""

    def __init__(self, message: str, code: str = "E_STORAGE_ERROR"):
        super().__init__(message)
        self.message = message
        self.code = code


def sniff_image(content: bytes) -> tuple[str, str] | None:
    """Return (content_type, extension) for supported image bytes, else None."""
    for magic, content_type, extension in IMAGE_SIGNATURES:
        if content.startswith(magic):
            return content_type, extension
    if len(content) >= 12 and content[:4] == b"RIFF" and content[8:12] == b"WEBP":
        return "image/webp", "webp"
    return None


def decode_base64_image(data: str) -> bytes:
    """Decode a base64 image, accepting an optional data-URL prefix.

    Raises:
        StorageError(E_INVALID_FILE_TYPE): Payload is not valid base64.
    """
    payload = data.strip()
    if payload.startswith("data:"):
        _, _, payload = payload.partition(",")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise StorageError("Image is not valid base64", code="E_INVALID_FILE_TYPE") from e


class ObjectStoreBase(ABC):
    """Abstract base class for object store implementations.

    Subclasses provide raw object operations; validation, key naming and
    batch rollback live here.
    """

    def __init__(self, max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES):
        self.max_image_bytes = max_image_bytes

    @abstractmethod
    def put_object(self, key: str, content: bytes, content_type: str) -> None:
        """Store bytes under key.

        Raises:
            StorageError: If the store rejects the write.
        """
        ...

    @abstractmethod
    def delete_object(self, key: str) -> None:
        """Delete the object under key.

        Raises:
            StorageError: If the store rejects the delete.
        """
        ...

    @abstractmethod
    def public_url(self, key: str) -> str:
        """Public URL under which key is served."""
        ...

    @abstractmethod
    def key_from_url(self, url: str) -> str | None:
        """Inverse of public_url; None for URLs this store does not serve."""
        ...

    def owns_url(self, url: str) -> bool:
        return self.key_from_url(url) is not None

    def validate_image(self, content: bytes) -> ImageBlob:
        """Check size and type from the bytes themselves.

        Raises:
            StorageError(E_FILE_TOO_LARGE | E_INVALID_FILE_TYPE)
        """
        if not content:
            raise StorageError("Image is empty", code="E_INVALID_FILE_TYPE")
        if len(content) > self.max_image_bytes:
            raise StorageError(
                f"Image exceeds {self.max_image_bytes} bytes", code="E_FILE_TOO_LARGE"
            )
        sniffed = sniff_image(content)
        if sniffed is None:
            raise StorageError("Unsupported image type", code="E_INVALID_FILE_TYPE")
        content_type, extension = sniffed
        return ImageBlob(content=content, content_type=content_type, extension=extension)

    def upload_images(self, blobs: Sequence[ImageBlob], folder: str) -> list[str]:
        """Upload validated images; all-or-nothing per call."""
        uploaded_keys: list[str] = []
        try:
            for blob in blobs:
                key = f"{folder}/{uuid4().hex}.{blob.extension}"
                self.put_object(key, blob.content, blob.content_type)
                uploaded_keys.append(key)
        except StorageError:
            for key in uploaded_keys:
                self._delete_quietly(key)
            raise
        return [self.public_url(key) for key in uploaded_keys]

    def upload_base64_images(self, images: Sequence[str], folder: str = "ads") -> list[str]:
        """Decode, validate and upload base64 images. Returns public URLs in order."""
        blobs = [self.validate_image(decode_base64_image(image)) for image in images]
        return self.upload_images(blobs, folder)

    def upload_files(self, files: Sequence[UploadFile], folder: str = "ads") -> list[str]:
        """Validate and upload multipart files. Returns public URLs in order."""
        blobs = [self.validate_image(f.content) for f in files]
        return self.upload_images(blobs, folder)

    def delete_images(self, urls: Iterable[str]) -> int:
        """Best-effort deletion by public URL. Returns the number deleted.

        URLs not served by this store are skipped. Never raises.
        """
        deleted = 0
        for url in urls:
            key = self.key_from_url(url)
            if key is None:
                logger.info("image_delete_skipped_foreign_url", url=url)
                continue
            if self._delete_quietly(key):
                deleted += 1
        return deleted

    def _delete_quietly(self, key: str) -> bool:
        try:
            self.delete_object(key)
            return True
        except StorageError as e:
            logger.warning("image_delete_failed", key=key, error=e.message)
            return False


class S3ObjectStore(ObjectStoreBase):
    """Production object store backed by an S3 bucket."""

    def __init__(
        self,
        bucket: str,
        region: str,
        *,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        public_base_url: str | None = None,
        max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
        client=None,
    ):
        """Initialize the S3 store.

        Args:
            bucket: Bucket name.
            region: AWS region of the bucket.
            access_key_id / secret_access_key: Explicit credentials; when
                omitted boto3's default credential chain applies.
            public_base_url: CDN prefix; defaults to the bucket's S3 URL.
            client: Pre-built boto3 S3 client (tests).
        """
        super().__init__(max_image_bytes=max_image_bytes)
        self.bucket = bucket
        self.region = region
        self._base_url = (
            public_base_url or f"https://{bucket}.s3.{region}.amazonaws.com"
        ).rstrip("/")
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )

    def put_object(self, key: str, content: bytes, content_type: str) -> None:
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 upload failed for {key}: {e}") from e

    def delete_object(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 delete failed for {key}: {e}") from e

    def public_url(self, key: str) -> str:
        return f"{self._base_url}/{key}"

    def key_from_url(self, url: str) -> str | None:
        prefix = f"{self._base_url}/"
        if url.startswith(prefix) and len(url) > len(prefix):
            return url[len(prefix) :]
        return None


class InMemoryObjectStore(ObjectStoreBase):
    """In-memory object store for local development and tests.

    Stores objects in a dict and serves them under a fake base URL.
    """

    BASE_URL = "https://objects.kivendi.test"

    def __init__(self, max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES):
        super().__init__(max_image_bytes=max_image_bytes)
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.fail_uploads = False

    def put_object(self, key: str, content: bytes, content_type: str) -> None:
        if self.fail_uploads:
            raise StorageError(f"Simulated upload failure for {key}")
        self.objects[key] = (content, content_type)

    def delete_object(self, key: str) -> None:
        self.objects.pop(key, None)

    def public_url(self, key: str) -> str:
        return f"{self.BASE_URL}/{key}"

    def key_from_url(self, url: str) -> str | None:
        prefix = f"{self.BASE_URL}/"
        if url.startswith(prefix):
            return url[len(prefix) :]
        return None


def get_object_store(settings: Settings | None = None) -> ObjectStoreBase:
    """Get the configured object store.

    Returns:
        S3ObjectStore if AWS_S3_BUCKET is set, InMemoryObjectStore otherwise.
    """
    settings = settings or get_settings()
    if settings.aws_s3_bucket:
        return S3ObjectStore(
            bucket=settings.aws_s3_bucket,
            region=settings.aws_region,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            public_base_url=settings.s3_public_base_url,
            max_image_bytes=settings.max_image_bytes,
        )

    logger.warning("object_store_in_memory", reason="AWS_S3_BUCKET not set")
    return InMemoryObjectStore(max_image_bytes=settings.max_image_bytes)
