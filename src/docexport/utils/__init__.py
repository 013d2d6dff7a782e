"""Utility exports for filesystem and concurrency helpers."""

from docexport.utils.concurrency import BoundedSemaphore, settle_all
from docexport.utils.fs import atomic_write, is_within, publish_path, remove_path, safe_delete

__all__ = [
    "BoundedSemaphore",
    "atomic_write",
    "is_within",
    "publish_path",
    "remove_path",
    "safe_delete",
    "settle_all",
]
