"""
Record operations over the configured collection.

Update retries a fixed number of times on optimistic-concurrency conflicts;
delete removes the record's image from object storage on a best-effort basis.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from catalog.db import DbClient
from catalog.errors import (
    RecordServiceError,
    StoreError,
    StoreErrorKind,
    WriteConflictError,
)
from catalog.storage import StorageClient

logger = logging.getLogger(__name__)

LIST_LIMIT = 100
SEARCH_LIMIT = 10
UPDATE_MAX_ATTEMPTS = 3
UPDATE_RETRY_DELAY_SECONDS = 0.1

ID_FIELDS = ("id", "_id")


def _without_ids(body: dict | None) -> dict:
    return {key: value for key, value in (body or {}).items() if key not in ID_FIELDS}


class RecordService:
    """Create, list, search, update and delete records in one collection."""

    def __init__(
        self,
        db: DbClient,
        storage: StorageClient,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.db = db
        self.storage = storage
        self._sleep = sleep

    @property
    def collection(self) -> str:
        return self.db.collection

    def create(self, body: dict) -> dict:
        try:
            return self.db.create_record(_without_ids(body))
        except StoreError as exc:
            logger.exception("Creating %s record failed", self.collection)
            raise RecordServiceError("Failed to create record", exc.message) from exc

    def list_all(self) -> list[dict]:
        try:
            return self.db.list_records(limit=LIST_LIMIT)
        except StoreError as exc:
            logger.exception("Listing %s records failed", self.collection)
            raise RecordServiceError("Failed to fetch records", exc.message) from exc

    def search(self, terms: str = "") -> list[dict]:
        try:
            return self.db.search_records(terms or "", limit=SEARCH_LIMIT)
        except StoreError as exc:
            logger.exception("Searching %s records for %r failed", self.collection, terms)
            raise RecordServiceError("Search failed", exc.message) from exc

    def update(self, record_id: str, body: dict | None) -> dict:
        """
        Apply a partial update, retrying on write conflicts.

        Up to UPDATE_MAX_ATTEMPTS attempts are made with a fixed delay
        between them. Exhausting them raises WriteConflictError; any other
        store error fails immediately.
        """
        data = _without_ids(body)
        for attempt in range(UPDATE_MAX_ATTEMPTS):
            try:
                updated = self.db.update_record(record_id, data)
            except StoreError as exc:
                if not exc.retryable:
                    logger.exception("Updating %s failed", record_id)
                    raise RecordServiceError("Failed to update record") from exc
                logger.warning(
                    "Write conflict updating %s on attempt %d", record_id, attempt
                )
                if attempt < UPDATE_MAX_ATTEMPTS - 1:
                    self._sleep(UPDATE_RETRY_DELAY_SECONDS)
                continue
            logger.info("Updated %s on attempt %d", record_id, attempt)
            return updated
        raise WriteConflictError()

    def delete(self, record_id: str) -> dict:
        try:
            existing = self.db.find_record(record_id)
            if existing is None:
                raise StoreError(
                    StoreErrorKind.NOT_FOUND, f"Record {record_id} not found"
                )
            deleted = self.db.delete_record(record_id)
        except StoreError as exc:
            logger.exception("Deleting %s failed", record_id)
            raise RecordServiceError("Failed to delete record", exc.message) from exc

        image_url = existing.get("imageUrl")
        if image_url:
            self._delete_image(image_url)
        return deleted

    def _delete_image(self, image_url: str) -> None:
        try:
            self.storage.delete(image_url)
        except Exception:
            # The record is already gone; a leftover image is only logged.
            logger.exception("Failed to delete image %s", image_url)
            return
        logger.info("Deleted image %s", image_url)
