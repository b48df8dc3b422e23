"""
Pydantic schemas for the catalog API.

Records are free-form documents, so the models only pin down the fields
the backend itself relies on and let everything else through.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class RecordFields(BaseModel):
    """Request body for creating or updating a record."""

    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    imageUrl: Optional[str] = None


class Record(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = None
    imageUrl: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    details: Optional[Any] = None


ERROR_RESPONSES = {500: {"model": ErrorResponse}}
UPDATE_ERROR_RESPONSES = {409: {"model": ErrorResponse}, **ERROR_RESPONSES}
