"""
Dependency wiring for the FastAPI app.

The store and storage clients are built once by `create_app` and kept on
`app.state` for the lifetime of the process; the providers below hand them
to request handlers.
"""

from __future__ import annotations

import logging

from fastapi import Request

from catalog.config import Settings
from catalog.db import DbClient, InMemoryDbClient, SqlDbClient
from catalog.service import RecordService
from catalog.storage import InMemoryStorageClient, S3StorageClient, StorageClient

logger = logging.getLogger(__name__)


def build_db_client(settings: Settings) -> DbClient:
    if settings.use_in_memory_backends or not settings.database_url:
        logger.info(
            "Using in-memory store for collection %s", settings.collection_name
        )
        return InMemoryDbClient(collection=settings.collection_name)

    client = SqlDbClient(settings.database_url, collection=settings.collection_name)
    logger.info(
        "Connected to database %s (collection %s)",
        client.engine.url.render_as_string(hide_password=True),
        settings.collection_name,
    )
    return client


def build_storage_client(settings: Settings) -> StorageClient:
    if settings.use_in_memory_backends or not settings.s3_bucket:
        logger.info("Using in-memory object storage")
        return InMemoryStorageClient()

    logger.info("Using S3 bucket %s for record images", settings.s3_bucket)
    return S3StorageClient(
        bucket=settings.s3_bucket,
        region=settings.s3_region or "",
        endpoint=settings.s3_endpoint or "",
        access_key_id=settings.aws_access_key_id or "",
        secret_access_key=settings.aws_secret_access_key or "",
        public_base_url=settings.storage_public_base_url,
    )


def get_record_service(request: Request) -> RecordService:
    return request.app.state.record_service
