#!/usr/bin/env python3
"""
Operator CLI for the cascade sync engine.

Runs the same syncs as the admin endpoints, e.g. after a bulk guest import
or to repair a client whose derived records drifted.

Usage:
------
python -m scripts.run_sync batch --entity-type guests CLIENT_ID [CLIENT_ID ...]
python -m scripts.run_sync full CLIENT_ID

Exit status is 0 when every subject synced, 1 otherwise, 2 for usage errors
(argparse rejects unknown entity types before anything runs).
"""

import asyncio
import json
import logging
import sys
from argparse import ArgumentParser, Namespace
from uuid import UUID

from cascade.context import EngineContext
from cascade.services import ENTITY_RULES, CascadeSyncEngine, SyncResult
from database.connection import dispose_engine
from shared.logging_config import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(description="Run cascade syncs for one or more clients")
    subparsers = parser.add_subparsers(dest="command", required=True)

    batch = subparsers.add_parser("batch", help="Sync many clients for one entity type")
    batch.add_argument(
        "--entity-type",
        default="guests",
        choices=sorted(ENTITY_RULES),
        help="Which rules to run (default: guests, i.e. every rule)",
    )
    batch.add_argument("subject_ids", nargs="+", type=UUID, help="Client ids")

    full = subparsers.add_parser("full", help="Run every rule for one client in one transaction")
    full.add_argument("subject_id", type=UUID, help="Client id")

    return parser


async def run(args: Namespace, engine: CascadeSyncEngine) -> SyncResult:
    """Dispatch the parsed command to the engine."""
    if args.command == "batch":
        return await engine.trigger_batch_sync(args.entity_type, args.subject_ids)
    return await engine.trigger_full_sync(args.subject_id)


async def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging()

    engine = CascadeSyncEngine(EngineContext.from_settings())
    try:
        result = await run(args, engine)
    finally:
        await dispose_engine()

    print(json.dumps(result.to_dict(), indent=2))
    if not result.success:
        logger.error(f"{len(result.errors)} subjects failed to sync")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
