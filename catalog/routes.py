"""
HTTP routes for the catalog API.

Handlers are plain functions so FastAPI runs them in its threadpool; the
update retry delay only holds up the request being retried.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from catalog.dependencies import get_record_service
from catalog.schemas import (
    ERROR_RESPONSES,
    UPDATE_ERROR_RESPONSES,
    Record,
    RecordFields,
)
from catalog.service import RecordService

router = APIRouter()


@router.post(
    "/data", response_model=Record, status_code=201, responses=ERROR_RESPONSES
)
def create_record(
    payload: RecordFields,
    service: RecordService = Depends(get_record_service),
):
    """Create a record. Any client-supplied id is discarded."""
    return service.create(payload.model_dump(exclude_unset=True))


@router.get("/data", response_model=list[Record], responses=ERROR_RESPONSES)
def list_records(service: RecordService = Depends(get_record_service)):
    return service.list_all()


@router.get("/search", response_model=list[Record], responses=ERROR_RESPONSES)
def search_records(
    terms: str = Query("", description="Case-insensitive substring of name"),
    service: RecordService = Depends(get_record_service),
):
    return service.search(terms)


@router.put(
    "/data/{record_id}", response_model=Record, responses=UPDATE_ERROR_RESPONSES
)
def update_record(
    record_id: str,
    payload: Optional[RecordFields] = Body(None),
    service: RecordService = Depends(get_record_service),
):
    body = payload.model_dump(exclude_unset=True) if payload else {}
    return service.update(record_id, body)


@router.delete(
    "/data/{record_id}", response_model=Record, responses=ERROR_RESPONSES
)
def delete_record(
    record_id: str,
    service: RecordService = Depends(get_record_service),
):
    """Delete a record and, best-effort, its image."""
    return service.delete(record_id)
