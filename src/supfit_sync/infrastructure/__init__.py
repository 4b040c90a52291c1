"""Backend clients and the durable local store."""

from .functions_client import FunctionsClient, extract_signed_url
from .kv_store import KeyValueStore, SqlAlchemyKeyValueStore
from .rest_client import RestClient
from .storage_client import StorageClient

__all__ = [
    "FunctionsClient",
    "KeyValueStore",
    "RestClient",
    "SqlAlchemyKeyValueStore",
    "StorageClient",
    "extract_signed_url",
]
