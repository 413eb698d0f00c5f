"""Backend drivers for durable blob storage."""

from .base import BlobStore
from .factory import make_blob_store, register_store

__all__ = ["BlobStore", "make_blob_store", "register_store"]
