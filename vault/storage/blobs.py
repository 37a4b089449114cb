"""
Physical blob storage backends.

The lifecycle engine only ever removes blobs; writes belong to the upload
service. Removal reports whether the object was actually there so purge can
stay idempotent.
"""
import enum
import logging
import os
from typing import Protocol

from minio import Minio
from minio.error import MinioException, S3Error
from urllib3.exceptions import HTTPError

from vault.core.config import settings

logger = logging.getLogger(__name__)


class RemovalStatus(str, enum.Enum):
    REMOVED = "removed"
    ALREADY_GONE = "already_gone"


class BlobStorageError(IOError):
    """Physical removal failed; the purge must be retried later"""


class BlobStore(Protocol):
    def remove(self, path: str) -> RemovalStatus:
        ...


class LocalBlobStore:
    """
    Files on a local or mounted filesystem.

    Relative storage paths are resolved under root; paths escaping the root
    are refused.
    """

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def _resolve(self, path: str) -> str:
        full_path = os.path.abspath(os.path.join(self.root, path))
        if full_path != self.root and not full_path.startswith(self.root + os.sep):
            raise BlobStorageError(f"Path outside storage root: {path}")
        return full_path

    def remove(self, path: str) -> RemovalStatus:
        full_path = self._resolve(path)
        try:
            os.remove(full_path)
        except FileNotFoundError:
            logger.info(f"File already gone: {full_path}")
            return RemovalStatus.ALREADY_GONE
        except OSError as e:
            raise BlobStorageError(f"Failed to delete {full_path}: {e}") from e

        logger.info(f"Deleted: {full_path}")
        return RemovalStatus.REMOVED


class MinioBlobStore:
    """
    Objects in a MinIO / S3 bucket.

    remove_object() succeeds for missing keys, so the object is stat'ed first
    to tell REMOVED from ALREADY_GONE.
    """

    MISSING_CODES = ("NoSuchKey", "NoSuchObject", "ResourceNotFound")

    # Connection and client failures raised outside S3Error
    TRANSPORT_ERRORS = (MinioException, HTTPError, OSError)

    def __init__(self, minio_client: Minio, bucket_name: str):
        self.client = minio_client
        self.bucket_name = bucket_name

    def remove(self, path: str) -> RemovalStatus:
        object_name = path.lstrip("/")
        try:
            self.client.stat_object(self.bucket_name, object_name)
        except S3Error as e:
            if e.code in self.MISSING_CODES:
                logger.info(f"Object already gone: {object_name}")
                return RemovalStatus.ALREADY_GONE
            raise BlobStorageError(f"Failed to stat {object_name}: {e}") from e
        except self.TRANSPORT_ERRORS as e:
            raise BlobStorageError(f"Object store unreachable while checking {object_name}: {e}") from e

        try:
            self.client.remove_object(self.bucket_name, object_name)
        except S3Error as e:
            raise BlobStorageError(f"Failed to delete {object_name}: {e}") from e
        except self.TRANSPORT_ERRORS as e:
            raise BlobStorageError(f"Object store unreachable while deleting {object_name}: {e}") from e

        logger.info(f"Deleted: {object_name}")
        return RemovalStatus.REMOVED


def minio_client_from_settings() -> Minio:
    return Minio(
        f"{settings.MINIO_HOST}:{settings.MINIO_PORT}",
        access_key=settings.MINIO_ACCESS_KEY,
        secret_key=settings.MINIO_SECRET_KEY,
        secure=settings.MINIO_SECURE,
    )


def create_blob_store() -> BlobStore:
    """Build the blob store selected by STORAGE_BACKEND."""
    if settings.STORAGE_BACKEND == "minio":
        return MinioBlobStore(minio_client_from_settings(), settings.MINIO_BUCKET)
    return LocalBlobStore(settings.STORAGE_ROOT)
