"""Upload pipeline services."""
from .upload_registry import BatchRegistry, build_upload_registry
from .upload_models import SourceFile, UploadStatus

__all__ = [
    "BatchRegistry",
    "build_upload_registry",
    "SourceFile",
    "UploadStatus",
]
