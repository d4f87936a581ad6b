"""Pydantic schemas for request/response models."""
from .upload import *

__all__ = [
    # Upload schemas
    "APIResponse",
    "UploadItemSnapshot",
    "UploadBatchSnapshot",
    "UploadSummary",
]
