"""Admin endpoints triggering cascade syncs."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from api.deps import get_sync_engine
from api.models.sync import BatchSyncRequest, SyncResultResponse
from cascade.errors import UnknownEntityType
from cascade.services import CascadeSyncEngine

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/batch", response_model=SyncResultResponse)
async def trigger_batch_sync(
    request: BatchSyncRequest,
    engine: CascadeSyncEngine = Depends(get_sync_engine),
) -> SyncResultResponse:
    """
    Sync several clients for one entity type (bulk import follow-up).

    Per-client failures are reported in `errors`, not as HTTP errors.
    """
    try:
        result = await engine.trigger_batch_sync(request.entity_type, request.subject_ids)
    except UnknownEntityType as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return SyncResultResponse.model_validate(result.to_dict())


@router.post("/{client_id}", response_model=SyncResultResponse)
async def trigger_full_sync(
    client_id: UUID,
    engine: CascadeSyncEngine = Depends(get_sync_engine),
) -> SyncResultResponse:
    """Run every derivation rule for one client in a single transaction."""
    result = await engine.trigger_full_sync(client_id)
    return SyncResultResponse.model_validate(result.to_dict())
