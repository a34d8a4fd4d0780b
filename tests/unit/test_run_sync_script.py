"""Unit tests for the operator sync CLI."""

from unittest.mock import AsyncMock, MagicMock
from uuid import UUID

import pytest

from cascade.services import SyncResult
from scripts.run_sync import build_parser, run

CLIENT_A = UUID("550e8400-e29b-41d4-a716-446655440000")
CLIENT_B = UUID("660e8400-e29b-41d4-a716-446655440001")


class TestRunSyncCli:
    def test_batch_defaults_to_guests(self):
        args = build_parser().parse_args(["batch", str(CLIENT_A), str(CLIENT_B)])

        assert args.entity_type == "guests"
        assert args.subject_ids == [CLIENT_A, CLIENT_B]

    def test_rejects_unknown_entity_type(self):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["batch", "--entity-type", "invoices", str(CLIENT_A)])

        assert exc_info.value.code == 2

    @pytest.mark.asyncio
    async def test_batch_dispatch(self):
        engine = MagicMock()
        engine.trigger_batch_sync = AsyncMock(return_value=SyncResult(synced=1))
        args = build_parser().parse_args(["batch", "--entity-type", "schedule", str(CLIENT_A)])

        result = await run(args, engine)

        assert result.synced == 1
        engine.trigger_batch_sync.assert_awaited_once_with("schedule", [CLIENT_A])

    @pytest.mark.asyncio
    async def test_full_dispatch(self):
        engine = MagicMock()
        engine.trigger_full_sync = AsyncMock(return_value=SyncResult(synced=1))
        args = build_parser().parse_args(["full", str(CLIENT_A)])

        await run(args, engine)

        engine.trigger_full_sync.assert_awaited_once_with(CLIENT_A)
