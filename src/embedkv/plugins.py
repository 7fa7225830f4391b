"""Store backend discovery via Python entry points."""

from importlib.metadata import entry_points
from typing import Any

from embedkv.protocols import KVStore

BACKEND_GROUP = "embedkv.backends"


def discover_backends() -> dict[str, Any]:
    """Discover all registered store backends.

    Returns:
        Dictionary mapping backend names to their classes
    """
    eps = entry_points(group=BACKEND_GROUP)
    return {ep.name: ep.load() for ep in eps}


def get_backend(name: str) -> Any:
    """Get a store backend class by name.

    Raises:
        ValueError: If the backend is not found
    """
    backends = discover_backends()
    if name not in backends:
        available = ", ".join(sorted(backends.keys())) or "(none)"
        raise ValueError(f"Store backend '{name}' not found. Available: {available}")
    return backends[name]


def create_store(backend: str, **kwargs: Any) -> KVStore:
    """Create a store instance.

    Args:
        backend: The backend name (e.g., "memory")
        **kwargs: Backend-specific configuration

    Returns:
        A KVStore implementation
    """
    cls = get_backend(backend)
    return cls(**kwargs)
