from __future__ import annotations

__all__ = [
    "__version__",
    "errors",
    "models",
]

__version__ = "0.3.0"

from . import errors, models  # noqa: E402
