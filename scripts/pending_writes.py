"""Inspect or clear form saves waiting for replay in the local store."""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass

from supfit_sync.config import SyncConfig
from supfit_sync.db import create_local_engine, init_db
from supfit_sync.domain.models import PendingWrite
from supfit_sync.infrastructure.kv_store import KeyValueStore, SqlAlchemyKeyValueStore
from supfit_sync.logging import configure_logging

PENDING_SUFFIX = ":pending"


@dataclass(slots=True)
class PendingSummary:
    writes: list[PendingWrite]
    cleared: int
    dry_run: bool


async def collect_pending(
    store: KeyValueStore,
    *,
    form_prefix: str = "",
    clear: bool = False,
) -> PendingSummary:
    """Return queued writes whose form key starts with ``form_prefix``."""

    writes: list[PendingWrite] = []
    cleared = 0
    for key in await store.keys(form_prefix):
        if not key.endswith(PENDING_SUFFIX):
            continue
        record = await store.get(key)
        if record is not None:
            try:
                writes.append(PendingWrite.from_record(record))
            except (KeyError, TypeError, ValueError):
                print(f"skipping corrupt record {key}", file=sys.stderr)
        if clear:
            await store.delete(key)
            cleared += 1
    return PendingSummary(writes=writes, cleared=cleared, dry_run=not clear)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="List or clear pending form writes.")
    parser.add_argument("--form", default="", help="Only include forms whose key starts with this prefix.")
    parser.add_argument("--clear", action="store_true", help="Delete the pending writes after listing them.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or [])
    config = SyncConfig.build_default()
    configure_logging(config.log_level, json_output=False)
    store = SqlAlchemyKeyValueStore(init_db(create_local_engine(config.local_store_url)))
    try:
        summary = asyncio.run(collect_pending(store, form_prefix=args.form, clear=args.clear))
    except Exception as exc:
        print(f"pending writes failed: {exc}", file=sys.stderr)
        return 2

    for write in summary.writes:
        print(
            f"{write.form_key} attempted_at={write.attempted_at.isoformat()} error_kind={write.error_kind}",
            file=sys.stdout,
        )
    if summary.dry_run:
        print(f"pending={len(summary.writes)}", file=sys.stdout)
    else:
        print(f"pending={len(summary.writes)}, cleared={summary.cleared}", file=sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
