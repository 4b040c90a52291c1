"""Create the durable local store used by the sync core."""

import sys

from supfit_sync.config import SyncConfig
from supfit_sync.db import create_local_engine, init_db
from supfit_sync.logging import configure_logging


def main() -> int:
    config = SyncConfig.build_default()
    configure_logging(config.log_level, json_output=False)
    init_db(create_local_engine(config.local_store_url))
    print(f"Local store initialized at {config.local_store_url}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
