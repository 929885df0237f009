"""Source adapter registry with lazy loading.

Usage:
    from src.sources import get_adapter

    async with httpx.AsyncClient() as client:
        adapter = get_adapter(source_config, client)
        raw = await adapter.fetch_all()
"""

import importlib

import httpx

from src.core.config import SourceConfig
from src.sources.base import RateLimitedError, SourceAdapter, SourceError

__all__ = [
    "RateLimitedError",
    "SourceAdapter",
    "SourceError",
    "available_sources",
    "get_adapter",
]

# Lazy registry: maps adapter kind → (module_path, class_name)
_REGISTRY: dict[str, tuple[str, str]] = {
    "arbeitnow": ("src.sources.arbeitnow", "ArbeitnowAdapter"),
    "lever": ("src.sources.lever", "LeverAdapter"),
    "rapidapi-internships": ("src.sources.rapidapi_internships", "RapidAPIInternshipsAdapter"),
}


def get_adapter(config: SourceConfig, client: httpx.AsyncClient) -> SourceAdapter:
    """Instantiate the adapter for ``config.kind``.

    Raises:
        ValueError: If the kind is unknown or the adapter's config is incomplete.
    """
    if config.kind not in _REGISTRY:
        valid = ", ".join(sorted(_REGISTRY))
        msg = f"Unknown source kind '{config.kind}'. Available: {valid}"
        raise ValueError(msg)

    module_path, class_name = _REGISTRY[config.kind]
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    return cls(config, client)  # type: ignore[no-any-return]


def available_sources() -> list[str]:
    """Return sorted list of registered adapter kinds."""
    return sorted(_REGISTRY)
