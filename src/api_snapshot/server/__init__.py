from .app import build_app, create_app
from .auth import api_key_dependency
from .errors import SnapshotServerError, register_exception_handlers

__all__ = ["build_app", "create_app", "api_key_dependency", "SnapshotServerError", "register_exception_handlers"]
