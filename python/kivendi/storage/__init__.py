"""Object store for ad, avatar and chat images.

Provides:
- ObjectStoreBase with S3 and in-memory implementations
- get_object_store() selecting the implementation from settings
"""

from kivendi.storage.client import (
    InMemoryObjectStore,
    ObjectStoreBase,
    S3ObjectStore,
    StorageError,
    UploadFile,
    get_object_store,
)

__all__ = [
    "InMemoryObjectStore",
    "ObjectStoreBase",
    "S3ObjectStore",
    "StorageError",
    "UploadFile",
    "get_object_store",
]
