# vidstore core module
from .config import get_settings, settings
from .local_storage import JsonFileStorage, LocalStorage, MemoryStorage, get_local_storage
from .logging import setup_logging

__all__ = [
    "settings",
    "get_settings",
    "setup_logging",
    "LocalStorage",
    "JsonFileStorage",
    "MemoryStorage",
    "get_local_storage",
]
