from __future__ import annotations

import logging

from .app import run
from .settings import AppConfig


def main() -> int:
    """Entry point for running the trainer from the command line."""
    config = AppConfig.load_from_env()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return run(config=config)


if __name__ == "__main__":
    raise SystemExit(main())
