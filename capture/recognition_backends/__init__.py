"""
Recognition Backends Module

Speech recognition engines wrapped behind one event contract, plus a
registry that only loads backends whose dependencies are installed.

Usage:
    from capture.recognition_backends import create_backend, list_available_backends

    available = list_available_backends()
    backend = create_backend("Scripted", text="hello")
"""

from .base import (
    RecognitionBackend,
    RecognitionError,
    RecognitionEvent,
    RecognitionEventType,
    RecognitionHandle,
    RecognitionOptions,
)
from .registry import (
    BackendRegistry,
    create_backend,
    get_backend_class,
    get_backend_registry,
    is_backend_available,
    list_available_backends,
    reset_registry,
)

__all__ = [
    "RecognitionBackend",
    "RecognitionError",
    "RecognitionEvent",
    "RecognitionEventType",
    "RecognitionHandle",
    "RecognitionOptions",
    "BackendRegistry",
    "create_backend",
    "get_backend_class",
    "get_backend_registry",
    "is_backend_available",
    "list_available_backends",
    "reset_registry",
]
