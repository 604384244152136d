"""
Recognition Backend Registry

Backends are defined by module path and imported lazily, so a machine
without faster-whisper or an audio stack can still run the capture service:
the missing backend is recorded as failed and starting a capture with it is
reported as "recognition unavailable" instead of crashing at import time.

Usage:
    from capture.recognition_backends.registry import get_backend_registry

    registry = get_backend_registry()
    registry.list_available_backends()
    backend = registry.create_backend("FasterWhisper", model_name="small")
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type

from capture.errors import RecognitionUnavailable

logger = logging.getLogger(__name__)


@dataclass
class BackendInfo:
    """Information about a recognition backend."""
    name: str
    class_name: str
    module_path: str
    dependencies: List[str]
    description: str


BACKEND_DEFINITIONS: List[BackendInfo] = [
    BackendInfo(
        name="FasterWhisper",
        class_name="FasterWhisperBackend",
        module_path="capture.recognition_backends.faster_whisper_backend",
        dependencies=["faster_whisper", "sounddevice", "numpy"],
        description="Local microphone capture transcribed with faster-whisper",
    ),
    BackendInfo(
        name="Scripted",
        class_name="ScriptedBackend",
        module_path="capture.recognition_backends.mock_backend",
        dependencies=[],
        description="Scripted backend for testing and development",
    ),
]


class BackendRegistry:
    """Dynamic registry for recognition backends with graceful dependency handling."""

    def __init__(self, definitions: Optional[List[BackendInfo]] = None):
        self._definitions = list(definitions) if definitions is not None else list(BACKEND_DEFINITIONS)
        self._registered_backends: Dict[str, Type[Any]] = {}
        self._backend_info: Dict[str, BackendInfo] = {}
        self._failed_backends: Dict[str, str] = {}
        self._initialized = False

    def _try_load_backend(self, backend_info: BackendInfo) -> Optional[Type[Any]]:
        try:
            module = importlib.import_module(backend_info.module_path)
            backend_class = getattr(module, backend_info.class_name)
            if not backend_class.is_available():
                raise ImportError(f"{backend_info.name} reports itself unavailable")
            logger.info(f"Successfully loaded backend: {backend_info.name}")
            return backend_class
        except Exception as e:
            error_msg = f"Failed to load {backend_info.name}: {e}"
            logger.debug(error_msg)
            self._failed_backends[backend_info.name] = error_msg
            return None

    def _initialize_registry(self) -> None:
        if self._initialized:
            return
        for backend_info in self._definitions:
            self._backend_info[backend_info.name] = backend_info
            backend_class = self._try_load_backend(backend_info)
            if backend_class is not None:
                self._registered_backends[backend_info.name] = backend_class
        if not self._registered_backends:
            logger.warning("No recognition backends are available! This may indicate missing dependencies.")
        else:
            logger.info(
                f"Backend registry initialized: {len(self._registered_backends)} available, "
                f"{len(self._failed_backends)} failed"
            )
        self._initialized = True

    def list_available_backends(self) -> List[str]:
        """Return the names of backends that imported cleanly."""
        self._initialize_registry()
        return list(self._registered_backends.keys())

    def get_backend_class(self, backend_name: str) -> Type[Any]:
        """Get a backend class by name, raising an error if not available."""
        self._initialize_registry()
        if backend_name not in self._registered_backends:
            if backend_name in self._failed_backends:
                raise ImportError(
                    f"Backend '{backend_name}' is not available: {self._failed_backends[backend_name]}"
                )
            available = ", ".join(self._registered_backends.keys())
            raise ValueError(f"Unknown backend '{backend_name}'. Available backends: {available}")
        return self._registered_backends[backend_name]

    def create_backend(self, backend_name: str, **kwargs: Any):
        """Instantiate a backend, mapping any failure to :class:`RecognitionUnavailable`."""
        try:
            backend_class = self.get_backend_class(backend_name)
            return backend_class(**kwargs)
        except Exception as e:
            raise RecognitionUnavailable(str(e)) from e

    def get_backend_info(self, backend_name: str) -> Optional[BackendInfo]:
        self._initialize_registry()
        return self._backend_info.get(backend_name)

    def is_backend_available(self, backend_name: str) -> bool:
        self._initialize_registry()
        return backend_name in self._registered_backends

    def get_failed_backends(self) -> Dict[str, str]:
        self._initialize_registry()
        return self._failed_backends.copy()

    def get_backend_status(self) -> Dict[str, Any]:
        """Status report used by the CLI ``backends`` command."""
        self._initialize_registry()
        status: Dict[str, Any] = {"available": [], "failed": []}
        for name, info in self._backend_info.items():
            entry = {"name": name, "description": info.description, "dependencies": info.dependencies}
            if name in self._registered_backends:
                status["available"].append(entry)
            else:
                entry["error"] = self._failed_backends.get(name, "Unknown error")
                status["failed"].append(entry)
        status["total_defined"] = len(self._definitions)
        status["total_available"] = len(status["available"])
        status["total_failed"] = len(status["failed"])
        return status


_registry_instance: Optional[BackendRegistry] = None


def get_backend_registry() -> BackendRegistry:
    """Get the global backend registry instance."""
    global _registry_instance
    if _registry_instance is None:
        _registry_instance = BackendRegistry()
    return _registry_instance


def reset_registry() -> None:
    """Reset the global registry instance (primarily for testing)."""
    global _registry_instance
    _registry_instance = None


def list_available_backends() -> List[str]:
    return get_backend_registry().list_available_backends()


def get_backend_class(backend_name: str) -> Type[Any]:
    return get_backend_registry().get_backend_class(backend_name)


def is_backend_available(backend_name: str) -> bool:
    return get_backend_registry().is_backend_available(backend_name)


def create_backend(backend_name: str, **kwargs: Any):
    return get_backend_registry().create_backend(backend_name, **kwargs)
