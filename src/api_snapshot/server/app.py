from __future__ import annotations

from typing import Iterable

from fastapi import Depends, FastAPI

from .. import __version__
from ..config import Settings
from ..logging_utils import configure_logging
from ..workspace import Workspace
from .auth import api_key_dependency
from .errors import register_exception_handlers
from .routes import build_router


def build_app(
    workspace: Workspace,
    *,
    title: str = "api-snapshot",
    api_key: str | Iterable[str] | None = None,
    api_key_header: str = "X-API-Key",
) -> FastAPI:
    app = FastAPI(title=title, version=__version__)
    router = build_router(workspace)

    if api_key:
        dependency = api_key_dependency(api_key, header_name=api_key_header)
        app.include_router(router, dependencies=[Depends(dependency)])
    else:
        app.include_router(router)

    register_exception_handlers(app)
    app.state.workspace = workspace
    return app


def create_app(settings: Settings | None = None) -> FastAPI:
    """App factory for ASGI servers, configured from `API_SNAPSHOT_*` variables.

    `API_SNAPSHOT_API_KEY` may hold several comma-separated keys.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level, settings.log_format)
    keys = [k.strip() for k in settings.api_key.split(",") if k.strip()] if settings.api_key else None
    return build_app(Workspace.from_settings(settings), api_key=keys)
