from nodian.services.filesystem import FileSystemService, LocalFileSystem
from nodian.services.persistence import JsonFileStore, KeyValueStore, MemoryStore

__all__ = ["FileSystemService", "JsonFileStore", "KeyValueStore", "LocalFileSystem", "MemoryStore"]
