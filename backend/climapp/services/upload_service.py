"""
Climapp Backend: Image Upload Service (Cloudinary)
===================================================

What:  Uploads estimate photos to Cloudinary and deletes them again.
How:   Signed REST calls through httpx (no SDK): the signature is the SHA-1
       of the sorted `key=value` parameters joined by '&' plus the API
       secret. Every image is resized on ingest to fit 1200x1200 with
       automatic quality and format.
Who:   routes/uploads.py.

Multiple uploads:
    All files are validated first (type, size, count); nothing is sent if
    any file is invalid. The uploads then run concurrently
    (asyncio.gather with return_exceptions=True) and every outcome is
    collected into a per-item report. If any upload failed, the request
    fails as a whole with UploadBatchError carrying that report. Images
    that did upload stay in Cloudinary; their publicId is in the report.
"""

import asyncio
import hashlib
import logging
import time
from typing import Any, Dict, List, NamedTuple, Optional

import httpx

from climapp.config import Settings
from climapp.exceptions import (
    AuthenticationError,
    ClimappError,
    ConfigurationError,
    NotFoundError,
    RateLimitError,
    UploadBatchError,
    UpstreamServiceError,
    ValidationError,
)
from climapp.middleware.request_id import get_request_id
from climapp.schemas.upload import UploadedImage
from climapp.services.upstream import call_with_retry, translate_transport_error

logger = logging.getLogger(__name__)

SERVICE_NAME = "cloudinary"

# Limit to 1200x1200, good automatic quality, WebP/AVIF where supported
INCOMING_TRANSFORMATION = "c_limit,h_1200,w_1200/q_auto:good/f_auto"


class ImageFile(NamedTuple):
    """One uploaded file as read from the multipart body."""

    filename: str
    content_type: str
    content: bytes


def sign_params(params: Dict[str, Any], api_secret: str) -> str:
    """Cloudinary request signature for `params` (file/api_key excluded)."""
    to_sign = "&".join(
        f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, "")
    )
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


class UploadService:
    """Cloudinary upload/destroy with request-level validation."""

    def __init__(
        self,
        app_settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = app_settings
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return self.settings.cloudinary_configured

    def folder_for(self, user_id: str, atendimento_id: str) -> str:
        return f"{self.settings.cloudinary_root_folder}/{user_id}/{atendimento_id}"

    # ── Validation ────────────────────────────────────────────────────────

    def validate_batch_size(self, count: int) -> None:
        """
        Raises:
            ValidationError: no files (MISSING_IMAGES) or more than
                MAX_IMAGES_PER_BATCH (TOO_MANY_IMAGES)
        """
        if not count:
            raise ValidationError(
                message="Nenhuma imagem foi enviada",
                code="MISSING_IMAGES",
                field="images",
            )
        if count > self.settings.max_images_per_batch:
            raise ValidationError(
                message=f"Máximo de {self.settings.max_images_per_batch} imagens por envio",
                code="TOO_MANY_IMAGES",
                field="images",
                details={"max_images": self.settings.max_images_per_batch},
                context={"received": count},
            )

    def validate_declared_size(self, filename: str, size: Optional[int]) -> None:
        """Check the size the multipart parser reports, before reading. Unknown size passes."""
        if size is not None and size > self.settings.max_image_size:
            self._too_large(filename, size)

    def validate_image(self, image: ImageFile) -> None:
        """
        Raises:
            ValidationError: not an image (INVALID_IMAGE_TYPE), empty
                (EMPTY_IMAGE) or above MAX_IMAGE_SIZE (IMAGE_TOO_LARGE)
        """
        if not (image.content_type or "").startswith("image/"):
            raise ValidationError(
                message="Apenas arquivos de imagem são permitidos",
                code="INVALID_IMAGE_TYPE",
                field="image",
                context={"filename": image.filename, "content_type": image.content_type},
            )
        if not image.content:
            raise ValidationError(
                message="Arquivo de imagem vazio",
                code="EMPTY_IMAGE",
                field="image",
                context={"filename": image.filename},
            )
        if len(image.content) > self.settings.max_image_size:
            self._too_large(image.filename, len(image.content))

    def _too_large(self, filename: str, size: int) -> None:
        max_mb = self.settings.max_image_size / (1024 * 1024)
        raise ValidationError(
            message=f"Imagem muito grande. Tamanho máximo: {max_mb:.0f}MB",
            code="IMAGE_TOO_LARGE",
            field="image",
            details={"max_bytes": self.settings.max_image_size},
            context={"filename": filename, "size": size},
        )

    def _ensure_configured(self) -> None:
        if not self.is_configured:
            raise ConfigurationError(
                service=SERVICE_NAME,
                setting="CLOUDINARY_CLOUD_NAME/API_KEY/API_SECRET",
            )

    # ── Operations ────────────────────────────────────────────────────────

    async def upload_image(
        self, image: ImageFile, user_id: str, atendimento_id: str, index: int = 0
    ) -> UploadedImage:
        """Validate and upload a single image."""
        self._ensure_configured()
        self.validate_image(image)
        return await self._upload(image, user_id, atendimento_id, index)

    async def upload_many(
        self, images: List[ImageFile], user_id: str, atendimento_id: str
    ) -> List[UploadedImage]:
        """
        Upload 1..MAX_IMAGES_PER_BATCH images concurrently.

        Returns:
            Uploaded images in request order (only when all succeeded).

        Raises:
            ValidationError: empty batch, too many files or an invalid file
            UploadBatchError: one or more uploads failed (per-item report)
        """
        self._ensure_configured()
        self.validate_batch_size(len(images))
        for image in images:
            self.validate_image(image)

        results = await asyncio.gather(
            *(
                self._upload(image, user_id, atendimento_id, index)
                for index, image in enumerate(images)
            ),
            return_exceptions=True,
        )

        report: List[Dict[str, Any]] = []
        uploaded: List[UploadedImage] = []
        for index, (image, result) in enumerate(zip(images, results)):
            if isinstance(result, UploadedImage):
                uploaded.append(result)
                report.append(
                    {
                        "index": index,
                        "filename": image.filename,
                        "ok": True,
                        "publicId": result.publicId,
                        "error": None,
                    }
                )
            elif isinstance(result, ClimappError):
                report.append(
                    {"index": index, "filename": image.filename, "ok": False, "error": result.code}
                )
            elif isinstance(result, Exception):
                logger.error(
                    "Unexpected upload failure for %s: %s",
                    image.filename,
                    str(result),
                    exc_info=result,
                )
                report.append(
                    {"index": index, "filename": image.filename, "ok": False, "error": "UPLOAD_FAILED"}
                )
            else:
                # CancelledError and other BaseExceptions are not ours to swallow
                raise result

        failed = len(images) - len(uploaded)
        if failed:
            logger.warning(
                "[%s] Upload batch failed: %d of %d images",
                get_request_id(),
                failed,
                len(images),
            )
            raise UploadBatchError(
                report=report,
                message=f"Falha no upload de {failed} de {len(images)} imagens",
                context={"atendimento_id": atendimento_id},
            )

        logger.info("[%s] Uploaded %d images", get_request_id(), len(uploaded))
        return uploaded

    async def delete_image(self, public_id: str) -> None:
        """
        Raises:
            NotFoundError: Cloudinary reports the image as not found
        """
        self._ensure_configured()
        params = {"public_id": public_id, "timestamp": int(time.time())}
        body = await call_with_retry(
            lambda: self._post("destroy", params),
            self.settings,
            "cloudinary destroy",
        )
        if body.get("result") != "ok":
            raise NotFoundError(
                resource="Imagem",
                message="Imagem não encontrada",
                code="IMAGE_NOT_FOUND",
                context={"public_id": public_id, "result": body.get("result")},
            )
        logger.info("Image deleted: %s", public_id)

    # ── Internals ─────────────────────────────────────────────────────────

    async def _upload(
        self, image: ImageFile, user_id: str, atendimento_id: str, index: int
    ) -> UploadedImage:
        # Millisecond timestamp + index keeps ids unique inside a batch
        params = {
            "folder": self.folder_for(user_id, atendimento_id),
            "public_id": str(int(time.time() * 1000) + index),
            "timestamp": int(time.time()),
            "transformation": INCOMING_TRANSFORMATION,
        }
        body = await call_with_retry(
            lambda: self._post("upload", params, image),
            self.settings,
            f"cloudinary upload #{index}",
        )
        return UploadedImage(
            url=body.get("secure_url") or body.get("url", ""),
            publicId=body["public_id"],
            width=body.get("width"),
            height=body.get("height"),
            format=body.get("format"),
            bytes=body.get("bytes"),
        )

    async def _post(
        self, action: str, params: Dict[str, Any], image: Optional[ImageFile] = None
    ) -> Dict[str, Any]:
        timeout = self.settings.upstream_timeout_seconds
        data = {
            **{key: str(value) for key, value in params.items()},
            "api_key": self.settings.cloudinary_api_key,
            "signature": sign_params(params, self.settings.cloudinary_api_secret),
        }
        files = None
        if image is not None:
            files = {"file": (image.filename, image.content, image.content_type)}

        try:
            async with httpx.AsyncClient(
                base_url=self.settings.cloudinary_base_url,
                timeout=timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    f"/{self.settings.cloudinary_cloud_name}/image/{action}",
                    data=data,
                    files=files,
                )
        except httpx.HTTPError as e:
            raise translate_transport_error(
                e,
                SERVICE_NAME,
                timeout,
                unavailable=self._failed(),
                timeout_message="Tempo limite excedido no envio da imagem",
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_success and isinstance(body, dict):
            return body

        context = {
            "service": SERVICE_NAME,
            "action": action,
            "status": response.status_code,
            "error": (body.get("error") or {}).get("message") if isinstance(body, dict) else None,
        }
        if response.status_code in (401, 403):
            raise AuthenticationError.upstream(SERVICE_NAME, context=context)
        if response.status_code == 429:
            raise RateLimitError(code="UPSTREAM_RATE_LIMITED", context=context)
        raise self._failed(context)

    @staticmethod
    def _failed(context: Optional[Dict[str, Any]] = None) -> UpstreamServiceError:
        return UpstreamServiceError(
            message="Falha no envio da imagem",
            code="UPLOAD_FAILED",
            context=context,
        )
