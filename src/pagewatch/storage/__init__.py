"""Storage backends for baselines and run records."""

from pagewatch.storage.apify import ApifyKeyValueStore
from pagewatch.storage.baseline import BaselineStore
from pagewatch.storage.filesystem import FilesystemBlobStore, JsonLinesSink

__all__ = [
    "ApifyKeyValueStore",
    "BaselineStore",
    "FilesystemBlobStore",
    "JsonLinesSink",
]
