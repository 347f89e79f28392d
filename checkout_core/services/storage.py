"""
File storage providers.

Providers:
- local: writes uploads below a directory served under a public path
- cloudinary: Cloudinary-style uploads and delivery URLs with transformations
- s3: Amazon S3 uploads addressed with virtual-hosted style URLs

Cloudinary and S3 transports are simulated; URL building and upload
signing follow the real services' formats.
"""
import asyncio
import hashlib
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union, runtime_checkable

import structlog
from pydantic import BaseModel

from ..config.models import CloudinarySettings, LocalStorageSettings, S3Settings
from ..errors import ServiceConstructionError
from ..monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024

# Order in which transformation parameters appear in delivery URLs
TRANSFORMATION_KEYS = (
    ("width", "w"),
    ("height", "h"),
    ("crop", "c"),
    ("quality", "q"),
    ("format", "f"),
    ("gravity", "g"),
)


class StorageFile(BaseModel):
    filename: str
    content: bytes
    mimetype: str
    size: int


class StorageResult(BaseModel):
    success: bool
    url: Optional[str] = None
    public_id: Optional[str] = None
    error: Optional[str] = None


@runtime_checkable
class StorageService(Protocol):
    """Contract shared by every storage provider."""

    async def upload_file(self, file: StorageFile, folder: str = "general") -> StorageResult:
        ...

    async def delete_file(self, public_id: str) -> bool:
        ...

    def get_file_url(self, public_id: str) -> str:
        ...

    def is_demo(self) -> bool:
        ...


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


class LocalStorageService:
    """Stores uploads on the local filesystem."""

    def __init__(self, settings: Optional[LocalStorageSettings] = None):
        self.settings = settings or LocalStorageSettings()
        self.upload_dir = Path(self.settings.upload_dir)

    def is_demo(self) -> bool:
        return True

    def _resolve(self, public_id: str) -> Path:
        root = self.upload_dir.resolve()
        path = (root / public_id).resolve()
        if root != path and root not in path.parents:
            raise ValueError(f"Path escapes upload directory: {public_id}")
        return path

    async def upload_file(self, file: StorageFile, folder: str = "general") -> StorageResult:
        filename = f"{_timestamp_ms()}_{Path(file.filename).name}"
        public_id = f"{folder}/{filename}"

        try:
            path = self._resolve(public_id)
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, lambda: path.parent.mkdir(parents=True, exist_ok=True))
            await loop.run_in_executor(None, path.write_bytes, file.content)
        except (OSError, ValueError) as e:
            logger.error("local_upload_failed", public_id=public_id, error=str(e))
            metrics.record_upload("local", False)
            return StorageResult(success=False, error=str(e))

        metrics.record_upload("local", True)
        logger.info("local_file_stored", public_id=public_id, size=file.size)
        return StorageResult(success=True, url=self.get_file_url(public_id), public_id=public_id)

    async def delete_file(self, public_id: str) -> bool:
        try:
            path = self._resolve(public_id)
            path.unlink()
        except FileNotFoundError:
            return False
        except (OSError, ValueError) as e:
            logger.error("local_delete_failed", public_id=public_id, error=str(e))
            return False
        logger.info("local_file_deleted", public_id=public_id)
        return True

    def get_file_url(self, public_id: str) -> str:
        return f"{self.settings.public_path}/{public_id}"


class CloudinaryStorageService:
    """
    Cloudinary provider.

    Besides the shared contract it offers transformation-aware delivery
    URLs, responsive URL sets, batch operations and signed parameters for
    direct browser uploads.
    """

    def __init__(self, settings: Optional[CloudinarySettings], latency: float = 1.0):
        """
        Initialize Cloudinary provider.

        Args:
            settings: Cloud name, API key and API secret
            latency: Simulated upload latency in seconds

        Raises:
            ServiceConstructionError: If any credential is absent
        """
        if settings is None or not (settings.cloud_name and settings.api_key and settings.api_secret):
            raise ServiceConstructionError(
                "Cloudinary credentials are required for production storage service",
                capability="storage",
            )
        self.settings = settings
        self.latency = latency

    def is_demo(self) -> bool:
        return False

    def get_cloud_name(self) -> str:
        return self.settings.cloud_name

    @property
    def _delivery_base(self) -> str:
        return f"https://res.cloudinary.com/{self.settings.cloud_name}/image/upload"

    async def upload_file(self, file: StorageFile, folder: str = "general") -> StorageResult:
        await asyncio.sleep(self.latency)

        if file.size > MAX_UPLOAD_BYTES:
            metrics.record_upload("cloudinary", False)
            logger.warning("cloudinary_upload_rejected", filename=file.filename, size=file.size)
            return StorageResult(success=False, error="File too large. Maximum size is 10MB.")

        public_id = f"{folder}/{_timestamp_ms()}_{uuid.uuid4().hex[:9]}"
        metrics.record_upload("cloudinary", True)
        logger.info("cloudinary_file_uploaded", public_id=public_id, size=file.size)
        return StorageResult(
            success=True, url=f"{self._delivery_base}/{public_id}", public_id=public_id
        )

    async def delete_file(self, public_id: str) -> bool:
        await asyncio.sleep(self.latency * 0.3)
        logger.info("cloudinary_file_deleted", public_id=public_id)
        return True

    @staticmethod
    def build_transformation_string(transformations: Mapping[str, Any]) -> str:
        """
        Build a Cloudinary transformation segment.

        Example:
            ``{"width": 400, "quality": "auto"}`` -> ``"w_400,q_auto"``
        """
        return ",".join(
            f"{prefix}_{transformations[key]}"
            for key, prefix in TRANSFORMATION_KEYS
            if transformations.get(key)
        )

    def get_file_url(
        self, public_id: str, transformations: Optional[Mapping[str, Any]] = None
    ) -> str:
        if transformations:
            segment = self.build_transformation_string(transformations)
            if segment:
                return f"{self._delivery_base}/{segment}/{public_id}"
        return f"{self._delivery_base}/{public_id}"

    def get_optimized_image_url(
        self,
        public_id: str,
        width: Optional[int] = None,
        height: Optional[int] = None,
        quality: Union[int, str] = "auto",
        format: str = "auto",
        crop: Optional[str] = None,
    ) -> str:
        return self.get_file_url(
            public_id,
            {
                "width": width,
                "height": height,
                "crop": crop,
                "quality": quality,
                "format": format,
            },
        )

    def get_responsive_image_urls(self, public_id: str) -> Dict[str, str]:
        return {
            "thumbnail": self.get_optimized_image_url(public_id, width=150, height=150, crop="fill"),
            "small": self.get_optimized_image_url(public_id, width=400),
            "medium": self.get_optimized_image_url(public_id, width=800),
            "large": self.get_optimized_image_url(public_id, width=1200),
            "original": self.get_file_url(public_id),
        }

    async def upload_optimized_image(
        self, file: StorageFile, folder: str = "products"
    ) -> StorageResult:
        # TODO: send an incoming transformation (limit 1200x1200, q_auto) once uploads are real
        return await self.upload_file(file, folder)

    async def upload_multiple_files(
        self, files: List[StorageFile], folder: str = "general"
    ) -> List[StorageResult]:
        return [await self.upload_file(file, folder) for file in files]

    async def delete_multiple_files(self, public_ids: List[str]) -> Dict[str, Any]:
        results = [await self.delete_file(public_id) for public_id in public_ids]
        succeeded = sum(1 for result in results if result)
        return {"success": succeeded, "failed": len(results) - succeeded, "results": results}

    def sign_params(self, params: Mapping[str, Any]) -> str:
        """
        Sign upload parameters the way Cloudinary expects.

        Parameters are sorted by name, joined as ``key=value`` pairs with
        ``&``, suffixed with the API secret and hashed with SHA-1.
        """
        to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params) if params[key] != "")
        return hashlib.sha1((to_sign + self.settings.api_secret).encode()).hexdigest()

    def generate_signed_upload_params(
        self, folder: str = "uploads", timestamp: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Parameters for a signed direct upload from the browser.

        Returns:
            Dict[str, Any]: Upload URL, signature, timestamp, API key and folder
        """
        timestamp = timestamp if timestamp is not None else int(time.time())
        return {
            "url": f"https://api.cloudinary.com/v1_1/{self.settings.cloud_name}/image/upload",
            "signature": self.sign_params({"folder": folder, "timestamp": timestamp}),
            "timestamp": timestamp,
            "api_key": self.settings.api_key,
            "folder": folder,
        }


class S3StorageService:
    """Amazon S3 provider."""

    def __init__(self, settings: Optional[S3Settings], latency: float = 0.5):
        if settings is None or not settings.bucket:
            raise ServiceConstructionError(
                "S3 bucket is required for production storage service",
                capability="storage",
            )
        self.settings = settings
        self.region = settings.region or "us-east-1"
        self.latency = latency

    def is_demo(self) -> bool:
        return False

    async def upload_file(self, file: StorageFile, folder: str = "general") -> StorageResult:
        await asyncio.sleep(self.latency)

        key = f"{folder}/{_timestamp_ms()}_{Path(file.filename).name}"
        metrics.record_upload("s3", True)
        logger.info("s3_object_uploaded", bucket=self.settings.bucket, key=key, size=file.size)
        return StorageResult(success=True, url=self.get_file_url(key), public_id=key)

    async def delete_file(self, public_id: str) -> bool:
        await asyncio.sleep(self.latency * 0.3)
        logger.info("s3_object_deleted", bucket=self.settings.bucket, key=public_id)
        return True

    def get_file_url(self, public_id: str) -> str:
        return f"https://{self.settings.bucket}.s3.{self.region}.amazonaws.com/{public_id}"
