"""Pydantic models for the cascade sync endpoints."""

from uuid import UUID

from pydantic import BaseModel, Field


class BatchSyncRequest(BaseModel):
    """Batch sync of several clients for one entity type."""

    entity_type: str = Field(description="guests, accommodation, transport or schedule")
    subject_ids: list[UUID] = Field(min_length=1)


class CreatedCountsResponse(BaseModel):
    accommodation: int = 0
    transport: int = 0
    schedule: int = 0


class SyncResultResponse(BaseModel):
    success: bool
    synced: int
    created: CreatedCountsResponse
    errors: list[str] = []
