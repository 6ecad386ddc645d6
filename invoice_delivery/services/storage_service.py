"""Artifact storage on the local filesystem or S3."""

import asyncio
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel

from invoice_delivery.config import Settings, settings
from invoice_delivery.core.errors import ConfigurationError, StorageError
from invoice_delivery.core.security import compute_hash
from invoice_delivery.models.invoice import StorageKind
from invoice_delivery.utils.logger import logger


class StoredArtifact(BaseModel):
    """Location descriptor returned by an artifact store."""

    file_name: str
    file_path: str
    retrieval_url: str | None = None
    file_size: int
    file_hash: str
    storage_type: StorageKind

    @property
    def locator(self) -> str:
        """Direct path for local storage, presigned URL for remote storage."""
        return self.retrieval_url or self.file_path


def _safe_name(name: str) -> str:
    """Keep only safe characters for file and object names."""
    cleaned = re.sub(r"[^\w.\-]", "_", name).strip("._")
    return cleaned or "document.pdf"


class ArtifactStore(ABC):
    """Persists rendered documents and hands back where they went."""

    @abstractmethod
    async def store(self, content: bytes, name: str) -> StoredArtifact:
        """Persist ``content`` and compute its integrity hash once."""

    @abstractmethod
    async def read(self, file_path: str) -> bytes:
        """Read back the bytes of a stored artifact."""

    def retrieval_url(self, file_path: str) -> str | None:
        """Fresh time-limited URL for remote artifacts; ``None`` when bytes are served directly."""
        return None


class LocalArtifactStore(ArtifactStore):
    """Stores artifacts as files under a base directory."""

    def __init__(self, base_dir: str | Path | None = None):
        self.base_dir = Path(base_dir or settings.storage_local_path)

    async def store(self, content: bytes, name: str) -> StoredArtifact:
        file_name = _safe_name(name)
        file_hash = compute_hash(content)
        path = self.base_dir / file_name
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write, path, content)
        except OSError as e:
            logger.error(f"Failed to save {file_name} to {self.base_dir}: {e}")
            raise StorageError(f"Local write failed: {e}") from e

        logger.info(f"Artifact saved locally: {path} ({len(content)} bytes)")
        return StoredArtifact(
            file_name=file_name,
            file_path=str(path),
            file_size=len(content),
            file_hash=file_hash,
            storage_type=StorageKind.LOCAL,
        )

    async def read(self, file_path: str) -> bytes:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, Path(file_path).read_bytes)
        except OSError as e:
            logger.error(f"Failed to read artifact {file_path}: {e}")
            raise StorageError(f"Local read failed: {e}") from e

    def _write(self, path: Path, content: bytes) -> None:
        # Directory is created on first use
        path.parent.mkdir(parents=True, exist_ok=True)
        # One temp file per write
        with tempfile.NamedTemporaryFile(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
        ) as tmp:
            tmp.write(content)
        tmp_path = Path(tmp.name)
        try:
            tmp_path.replace(path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise


class S3ArtifactStore(ArtifactStore):
    """Stores artifacts in an S3 bucket and links to them with presigned URLs."""

    def __init__(self, config: Settings | None = None, s3_client=None):
        config = config or settings
        if not config.s3_bucket_name:
            raise ConfigurationError("S3 storage selected but S3_BUCKET_NAME is not set")

        self.bucket_name = config.s3_bucket_name
        self.presigned_url_expiration = config.s3_presigned_url_expiration
        if s3_client is None:
            kwargs = {
                "region_name": config.s3_region,
                "aws_access_key_id": config.s3_access_key,
                "aws_secret_access_key": config.s3_secret_key,
                "config": Config(
                    connect_timeout=config.provider_timeout_seconds,
                    read_timeout=config.provider_timeout_seconds,
                ),
            }
            if config.s3_endpoint_url:
                kwargs["endpoint_url"] = config.s3_endpoint_url
            s3_client = boto3.client("s3", **kwargs)
        self.s3_client = s3_client

    async def store(self, content: bytes, name: str) -> StoredArtifact:
        key = _safe_name(name)
        file_hash = compute_hash(content)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._put_object, key, content, file_hash)
            url = self.retrieval_url(key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload {key} to S3: {e}")
            raise StorageError(f"S3 upload failed: {e}") from e

        logger.info(f"Successfully uploaded {key} to S3 bucket {self.bucket_name}")
        return StoredArtifact(
            file_name=key,
            file_path=key,
            retrieval_url=url,
            file_size=len(content),
            file_hash=file_hash,
            storage_type=StorageKind.REMOTE,
        )

    async def read(self, file_path: str) -> bytes:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._get_object, file_path)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to download {file_path} from S3: {e}")
            raise StorageError(f"S3 download failed: {e}") from e

    def retrieval_url(self, file_path: str) -> str:
        try:
            url: str = self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": file_path},
                ExpiresIn=self.presigned_url_expiration,
            )
            return url
        except ClientError as e:
            logger.error(f"Failed to generate pre-signed URL for {file_path}: {e}")
            raise StorageError(f"Failed to generate pre-signed URL: {e}") from e

    def _put_object(self, key: str, content: bytes, file_hash: str) -> None:
        self.s3_client.put_object(
            Bucket=self.bucket_name,
            Key=key,
            Body=content,
            ContentType="application/pdf",
            Metadata={"document-hash": file_hash},
        )

    def _get_object(self, key: str) -> bytes:
        response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
        content: bytes = response["Body"].read()
        return content


def create_artifact_store(config: Settings | None = None) -> ArtifactStore:
    """Select the storage backend from configuration."""
    config = config or settings
    if config.storage_type == "s3":
        return S3ArtifactStore(config)
    return LocalArtifactStore(config.storage_local_path)
