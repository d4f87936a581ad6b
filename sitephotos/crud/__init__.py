"""Database CRUD operations."""
from .photo import *

__all__ = [
    # Photo operations
    "create_photo",
]
