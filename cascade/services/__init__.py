"""
Cascade services.
"""

from cascade.services.sync_service import (
    ENTITY_RULES,
    CascadeSyncEngine,
    CreatedCounts,
    SyncResult,
)

__all__ = ["ENTITY_RULES", "CascadeSyncEngine", "CreatedCounts", "SyncResult"]
