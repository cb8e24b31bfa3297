"""
Climapp Backend: Request Dependencies
======================================

What:  FastAPI dependency functions that hand routes the objects built once
       in create_app() and kept on app.state.
Why here: Routes stay free of app.state lookups, and tests replace any of
       these through app.dependency_overrides.
"""

from fastapi import Request

from climapp.config import Settings
from climapp.services.audio_pipeline import AudioPipeline
from climapp.services.auth_service import AuthService
from climapp.services.upload_service import UploadService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_audio_pipeline(request: Request) -> AudioPipeline:
    return request.app.state.audio_pipeline


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_upload_service(request: Request) -> UploadService:
    return request.app.state.upload_service
