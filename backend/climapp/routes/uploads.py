"""
Climapp Backend: Image Upload Route Handlers
=============================================

What:  Estimate photos: single and multiple upload, deletion, and a
       configuration report.
How:   Multipart bodies are read here into ImageFile tuples; validation,
       signing and the Cloudinary calls live in UploadService.
Who:   The orçamento screen of the mobile app.

Request Flow (single image):
    1. multipart {image, atendimentoId, userId}
    2. required fields checked (400 MISSING_REQUIRED_FIELDS / MISSING_IMAGE)
    3. declared size checked before the file is read (400 IMAGE_TOO_LARGE)
    4. UploadService.upload_image(): type/size check → signed upload
    5. 200 {success, message, data: {url, publicId, width, height, format, bytes}}
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from climapp.dependencies import get_upload_service
from climapp.exceptions import ValidationError
from climapp.schemas.common import ErrorResponse
from climapp.schemas.upload import (
    DeleteImageResponse,
    MultipleUploadData,
    MultipleUploadResponse,
    UploadResponse,
    UploadStatusData,
    UploadStatusResponse,
)
from climapp.services.upload_service import (
    INCOMING_TRANSFORMATION,
    ImageFile,
    UploadService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload", tags=["Upload"])


def _require_ids(atendimento_id: Optional[str], user_id: Optional[str]) -> None:
    if not atendimento_id or not user_id:
        raise ValidationError(
            message="atendimentoId e userId são obrigatórios",
            code="MISSING_REQUIRED_FIELDS",
            details={"required": ["atendimentoId", "userId"]},
        )


async def _read(upload: UploadFile, uploads: UploadService) -> ImageFile:
    """
    Read an UploadFile and close it.

    The declared size is checked first, and the read stops one byte past
    MAX_IMAGE_SIZE so an undeclared oversized file is never held whole.
    """
    filename = upload.filename or "imagem"
    try:
        uploads.validate_declared_size(filename, upload.size)
        content = await upload.read(uploads.settings.max_image_size + 1)
    finally:
        await upload.close()
    return ImageFile(
        filename=filename,
        content_type=upload.content_type or "",
        content=content,
    )


@router.post(
    "/orcamento",
    response_model=UploadResponse,
    responses={
        400: {"description": "Missing field, non-image or too large", "model": ErrorResponse},
        503: {"description": "Image host unavailable or not configured", "model": ErrorResponse},
    },
    summary="Upload one estimate photo",
    description=(
        "Stores the image under climapp/atendimentos/{userId}/{atendimentoId}, resized "
        "to fit 1200x1200 with automatic quality and format. Max 10MB."
    ),
)
async def upload_orcamento_image(
    image: Optional[UploadFile] = File(default=None, description="Image file, max 10MB"),
    atendimentoId: Optional[str] = Form(default=None),
    userId: Optional[str] = Form(default=None),
    uploads: UploadService = Depends(get_upload_service),
) -> UploadResponse:
    if image is None:
        raise ValidationError(
            message="Nenhuma imagem foi enviada",
            code="MISSING_IMAGE",
            field="image",
        )
    _require_ids(atendimentoId, userId)

    image_file = await _read(image, uploads)
    logger.info(
        "Received upload: filename=%s, size=%d bytes",
        image_file.filename,
        len(image_file.content),
    )
    uploaded = await uploads.upload_image(image_file, userId, atendimentoId)
    return UploadResponse(data=uploaded)


@router.post(
    "/orcamento/multiple",
    response_model=MultipleUploadResponse,
    responses={
        400: {"description": "No files, too many files or an invalid file", "model": ErrorResponse},
        503: {
            "description": "One or more uploads failed; `details.items` has the per-image report",
            "model": ErrorResponse,
        },
    },
    summary="Upload several estimate photos",
    description=(
        "Uploads 1-10 images concurrently. The request succeeds only if every image "
        "uploads; otherwise it fails with UPLOAD_BATCH_FAILED and a per-item report."
    ),
)
async def upload_orcamento_images(
    images: Optional[List[UploadFile]] = File(default=None),
    atendimentoId: Optional[str] = Form(default=None),
    userId: Optional[str] = Form(default=None),
    uploads: UploadService = Depends(get_upload_service),
) -> MultipleUploadResponse:
    _require_ids(atendimentoId, userId)
    images = images or []
    # Count is checked before any file is read
    uploads.validate_batch_size(len(images))

    image_files = [await _read(upload, uploads) for upload in images]
    uploaded = await uploads.upload_many(image_files, userId, atendimentoId)
    return MultipleUploadResponse(
        message=f"{len(uploaded)} imagens enviadas com sucesso",
        data=MultipleUploadData(images=uploaded, count=len(uploaded)),
    )


@router.delete(
    "/orcamento/{public_id:path}",
    response_model=DeleteImageResponse,
    responses={404: {"description": "Image not found", "model": ErrorResponse}},
    summary="Delete an estimate photo",
)
async def delete_orcamento_image(
    public_id: str,
    uploads: UploadService = Depends(get_upload_service),
) -> DeleteImageResponse:
    """`public_id` contains slashes (the folder path), hence the :path converter."""
    await uploads.delete_image(public_id)
    return DeleteImageResponse(publicId=public_id)


@router.get(
    "/status",
    response_model=UploadStatusResponse,
    summary="Image upload configuration",
    description="No call to the image host is made.",
)
async def upload_status(
    uploads: UploadService = Depends(get_upload_service),
) -> UploadStatusResponse:
    app_settings = uploads.settings
    return UploadStatusResponse(
        data=UploadStatusData(
            configured=uploads.is_configured,
            cloud_name=app_settings.cloudinary_cloud_name or None,
            folder=app_settings.cloudinary_root_folder,
            max_image_bytes=app_settings.max_image_size,
            max_images_per_batch=app_settings.max_images_per_batch,
            transformation=INCOMING_TRANSFORMATION,
        )
    )
