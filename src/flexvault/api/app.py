from __future__ import annotations

import os
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from flexvault.api.errors import ApiError
from flexvault.api.routes import router
from flexvault.api.structured_logging import RequestLogMiddleware
from flexvault.runtime.bootstrap import VaultSystem
from flexvault.runtime.bootstrap import build_system as _build_system
from flexvault.runtime.errors import VaultError


def build_system() -> VaultSystem:
    """Build the vault system for API runtime.

    Tests monkeypatch `flexvault.api.app.build_system` instead of reaching into
    runtime modules.
    """
    return _build_system()


def create_app(*, system: Optional[VaultSystem] = None, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    system:
      - attach an already built VaultSystem (tests)
    boot_runtime:
      - True (default): load config + SQLite state via build_system()
      - False: no system attached; routes answer 500 not_ready
    """
    mode = os.environ.get("FLEXVAULT_MODE", "prod").strip().lower()

    if mode == "prod":
        app = FastAPI(title="Flex Vault API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="Flex Vault API")

    if system is not None:
        app.state.system = system
    elif boot_runtime:
        app.state.system = build_system()
    else:
        app.state.system = None

    @app.exception_handler(ApiError)
    async def _api_error(_request: Request, exc: ApiError) -> Any:
        return JSONResponse(status_code=exc.status_code, content=exc.to_json())

    @app.exception_handler(VaultError)
    async def _vault_error(_request: Request, exc: VaultError) -> Any:
        err = ApiError.from_vault_error(exc)
        return JSONResponse(status_code=err.status_code, content=err.to_json())

    app.add_middleware(RequestLogMiddleware)
    app.include_router(router, prefix="/v1")
    return app
