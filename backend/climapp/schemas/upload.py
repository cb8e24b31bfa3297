"""
Climapp Backend: Image Upload Schemas
======================================
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class UploadedImage(BaseModel):
    """One image as stored by the hosting service."""

    url: str = Field(description="HTTPS delivery URL")
    publicId: str = Field(description="Identifier used for deletion")
    width: Optional[int] = None
    height: Optional[int] = None
    format: Optional[str] = None
    bytes: Optional[int] = None


class UploadResponse(BaseModel):
    success: bool = True
    message: str = "Imagem enviada com sucesso"
    data: UploadedImage


class MultipleUploadData(BaseModel):
    images: List[UploadedImage]
    count: int


class MultipleUploadResponse(BaseModel):
    success: bool = True
    message: str
    data: MultipleUploadData


class DeleteImageResponse(BaseModel):
    success: bool = True
    message: str = "Imagem removida com sucesso"
    publicId: str


class UploadStatusData(BaseModel):
    configured: bool
    cloud_name: Optional[str] = None
    folder: str
    max_image_bytes: int
    max_images_per_batch: int
    transformation: str


class UploadStatusResponse(BaseModel):
    success: bool = True
    message: str = "Status do serviço de upload"
    data: UploadStatusData
