"""
FastAPI application entry point for the catalog backend.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from catalog.config import Settings, get_settings
from catalog.db import DbClient
from catalog.dependencies import build_db_client, build_storage_client
from catalog.errors import CatalogError
from catalog.routes import router
from catalog.service import RecordService
from catalog.storage import StorageClient


async def catalog_error_handler(request: Request, exc: CatalogError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(
    settings: Optional[Settings] = None,
    *,
    db: Optional[DbClient] = None,
    storage: Optional[StorageClient] = None,
) -> FastAPI:
    """
    Build the app and its long-lived clients.

    Clients passed in are used as-is; otherwise they are built from settings.
    """
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)

    if db is None:
        db = build_db_client(settings)
    if storage is None:
        storage = build_storage_client(settings)

    app = FastAPI(title="Catalog Backend (FastAPI)", version="0.1.0")
    app.state.db = db
    app.state.storage = storage
    app.state.record_service = RecordService(db, storage)
    app.add_exception_handler(CatalogError, catalog_error_handler)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
