"""
File storage abstraction. S3 OR local filesystem. Controlled by FF_USE_S3 flag.

Files are keyed by owner and stored name: {user_id}/{file_name}.
"""

import asyncio
import logging
import mimetypes
import random
import re
import time
from abc import ABC, abstractmethod
from pathlib import Path

from .config import get_settings
from .exceptions import StorageError
from .flags import get_flags

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def generate_file_name(original_name: str) -> str:
    """
    Collision-resistant stored name: <stem>-<epoch ms>-<random><ext>.
    The extension of the original name is preserved.
    """
    base = Path(original_name or "document").name
    ext = Path(base).suffix.lower()
    stem = _UNSAFE_CHARS.sub("_", Path(base).stem).strip("._") or "document"
    suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
    return f"{stem[:100]}-{suffix}{ext}"


class StorageBackend(ABC):
    @abstractmethod
    async def save(
        self, file_bytes: bytes, file_name: str, user_id: str, content_type: str = ""
    ) -> str:
        """Store file. Returns the URL clients use to fetch it."""
        ...

    @abstractmethod
    async def read(self, file_name: str, user_id: str) -> bytes:
        """Return the file contents. Raises StorageError if missing."""
        ...

    @abstractmethod
    async def delete(self, file_name: str, user_id: str) -> bool:
        """Remove the file. Returns False if it did not exist."""
        ...


class S3Storage(StorageBackend):
    def __init__(self):
        self._client = None

    def _get_client(self):
        if self._client is None:
            import boto3

            settings = get_settings()
            kwargs = {"region_name": settings.aws_region}
            if settings.aws_access_key_id:
                kwargs["aws_access_key_id"] = settings.aws_access_key_id
                kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
            self._client = boto3.client("s3", **kwargs)
        return self._client

    def _sync_read(self, bucket: str, key: str) -> bytes:
        obj = self._get_client().get_object(Bucket=bucket, Key=key)
        return obj["Body"].read()

    @staticmethod
    def _key(file_name: str, user_id: str) -> str:
        return f"{user_id}/documents/{Path(file_name).name}"

    async def save(
        self, file_bytes: bytes, file_name: str, user_id: str, content_type: str = ""
    ) -> str:
        settings = get_settings()
        key = self._key(file_name, user_id)

        try:
            await asyncio.to_thread(
                self._get_client().put_object,
                Bucket=settings.s3_bucket_name,
                Key=key,
                Body=file_bytes,
                ContentType=content_type or _guess_content_type(file_name),
            )
        except Exception as e:
            raise StorageError(f"S3 upload failed for {key}: {e}") from e

        logger.info("Uploaded to S3: %s", key)
        return f"https://{settings.s3_bucket_name}.s3.{settings.aws_region}.amazonaws.com/{key}"

    async def read(self, file_name: str, user_id: str) -> bytes:
        settings = get_settings()
        key = self._key(file_name, user_id)
        try:
            return await asyncio.to_thread(self._sync_read, settings.s3_bucket_name, key)
        except Exception as e:
            raise StorageError(f"S3 read failed for {key}: {e}") from e

    async def delete(self, file_name: str, user_id: str) -> bool:
        settings = get_settings()
        key = self._key(file_name, user_id)
        try:
            await asyncio.to_thread(
                self._get_client().delete_object, Bucket=settings.s3_bucket_name, Key=key
            )
        except Exception as e:
            raise StorageError(f"S3 delete failed for {key}: {e}") from e
        logger.info("Deleted from S3: %s", key)
        return True


class LocalStorage(StorageBackend):
    def __init__(self, base_path: str = "./uploads"):
        self.base_path = Path(base_path)

    def path_for(self, file_name: str, user_id: str) -> Path:
        # Path(...).name strips any directory components smuggled into the name
        return self.base_path / Path(user_id).name / Path(file_name).name

    async def save(
        self, file_bytes: bytes, file_name: str, user_id: str, content_type: str = ""
    ) -> str:
        file_path = self.path_for(file_name, user_id)
        try:
            await asyncio.to_thread(_write_file, file_path, file_bytes)
        except OSError as e:
            raise StorageError(f"Could not write {file_path}: {e}") from e

        logger.info("Saved locally: %s", file_path)
        return f"/uploads/{file_path.name}"

    async def read(self, file_name: str, user_id: str) -> bytes:
        file_path = self.path_for(file_name, user_id)
        try:
            return await asyncio.to_thread(file_path.read_bytes)
        except OSError as e:
            raise StorageError(f"Could not read {file_path}: {e}") from e

    async def delete(self, file_name: str, user_id: str) -> bool:
        file_path = self.path_for(file_name, user_id)
        try:
            await asyncio.to_thread(file_path.unlink)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Could not delete {file_path}: {e}") from e
        logger.info("Deleted locally: %s", file_path)
        return True


def get_storage() -> StorageBackend:
    """Return the active storage backend based on feature flags."""
    flags = get_flags()
    if flags.use_s3:
        return S3Storage()
    return LocalStorage(get_settings().upload_dir)


def _write_file(file_path: Path, file_bytes: bytes) -> None:
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_bytes(file_bytes)


def _guess_content_type(filename: str) -> str:
    ct, _ = mimetypes.guess_type(filename)
    return ct or "application/octet-stream"
