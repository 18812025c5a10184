"""Command line entry point: ``python -m lvi_adapter``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from . import async_run, async_setup, async_unload

_LOGGER = logging.getLogger(__name__)


async def _async_main(work_dir: Path | None) -> int:
    adapter = await async_setup(work_dir)
    if adapter is None:
        return 1
    try:
        await async_run(adapter)
    finally:
        await async_unload(adapter)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="LVI heater adapter")
    parser.add_argument(
        "--work-dir",
        type=Path,
        default=None,
        help="directory holding config.json and app-manifest.json",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    try:
        return asyncio.run(_async_main(args.work_dir))
    except KeyboardInterrupt:
        _LOGGER.info("Interrupted, exiting")
        return 0


if __name__ == "__main__":
    sys.exit(main())
