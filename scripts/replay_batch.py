#!/usr/bin/env python3
"""Replay a telemetry batch against seeded Trip/Consignment documents.

Runs the reconciler entirely in memory and prints the batch report, the
alerts raised, and the resulting documents as JSON. Useful for checking
what a captured change-feed batch would have done.

Seed file: a JSON list of documents. Each needs ``entityType``; the
partition key is derived (``vin`` for Trips, ``id`` for Consignments,
``tripId`` for intents).

Batch file: a JSON list of telemetry documents
(``{"vin": ..., "odometer": ..., "timestamp": ...}``).

Example::

    python scripts/replay_batch.py seed.json batch.json --now 2026-03-01T12:00:00Z
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pytripsync import (  # noqa: E402
    CollectingAlertChannel,
    EntityType,
    InMemoryDocumentStore,
    ReconcilerConfig,
    TripReconciler,
)
from pytripsync.ingestion.normalize import parse_timestamp  # noqa: E402


def _partition_key(document: dict[str, Any]) -> str:
    entity_type = document.get("entityType")
    if entity_type == EntityType.TRIP:
        return str(document["vin"])
    if entity_type == EntityType.RECONCILIATION_INTENT:
        return str(document["tripId"])
    return str(document["id"])


def _load_json_list(path: Path) -> list[dict[str, Any]]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict) and isinstance(data.get("documents"), list):
        data = data["documents"]
    if not isinstance(data, list):
        raise SystemExit(f"{path}: expected a JSON list")
    return [item for item in data if isinstance(item, dict)]


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("seed", type=Path, help="JSON list of Trip/Consignment documents")
    parser.add_argument("batch", type=Path, help="JSON list of telemetry documents")
    parser.add_argument("--now", help="Decision time (RFC 3339); defaults to the current time")
    parser.add_argument("--no-intents", action="store_true", help="Write documents without reconciliation intents")
    parser.add_argument(
        "--no-high-water-mark",
        action="store_true",
        help="Accept odometer readings below the persisted high-water mark",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> dict[str, Any]:
    now = parse_timestamp(args.now) if args.now else None
    if args.now and now is None:
        raise SystemExit(f"--now: cannot parse {args.now!r}")

    store = InMemoryDocumentStore((_partition_key(doc), doc) for doc in _load_json_list(args.seed))
    alerts = CollectingAlertChannel()
    config = ReconcilerConfig.from_env(
        use_intents=not args.no_intents,
        enforce_high_water_mark=not args.no_high_water_mark,
        raise_on_group_error=False,
    )
    reconciler = TripReconciler(store, alerts, config=config)
    report = await reconciler.process_batch(_load_json_list(args.batch), now=now)

    return {
        "report": report.model_dump(mode="json"),
        "alerts": [signal.model_dump(mode="json") for signal in alerts.signals],
        "documents": store.documents(),
    }


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    output = asyncio.run(_run(args))
    print(json.dumps(output, indent=2, sort_keys=True))
    failed = [o for o in output["report"]["outcomes"] if o["status"] == "failed"]
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
