"""Top-level package for flowdictate."""

__version__ = "0.3.0"

from . import config, hotkey, pipeline, providers, validation

__all__ = ["config", "hotkey", "pipeline", "providers", "validation", "__version__"]

try:  # pragma: no cover - optional dependency
    from . import menubar as menubar  # type: ignore
except Exception:  # noqa: BLE001 - optional dependency failure is acceptable
    menubar = None  # type: ignore
else:
    __all__.append("menubar")
