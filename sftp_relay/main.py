"""High-level entrypoint for the relay service."""

from __future__ import annotations

import json
import sys
from typing import Optional

from .config import DEFAULT_CONFIG_FILE, load_config
from .errors import StartupFailure
from .server import create_server
from .transfer import TransferEngine, setup_logger

BANNER = "-" * 50


def main(config_path: Optional[str] = None) -> int:
    try:
        cfg = load_config(config_path or DEFAULT_CONFIG_FILE)
    except StartupFailure as exc:
        print(f"[FATAL] {exc}", file=sys.stderr)
        return 1

    logger = setup_logger(cfg.log_file)
    logger.info(BANNER)
    logger.info("SFTP RELAY SERVICE STARTED")
    logger.info(BANNER)
    logger.info(f"[CONFIG] loaded from {cfg.config_path}\n" + json.dumps(cfg.masked(), ensure_ascii=False, indent=2))

    engine = TransferEngine(cfg, logger)
    try:
        server = create_server(cfg, engine, logger)
    except StartupFailure as exc:
        logger.critical(f"[FATAL] {exc}")
        return 1

    logger.info("[LISTEN] waiting for commands...")
    with server:
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            logger.info("[LISTEN] interrupted; shutting down")
    return 0


def run() -> None:
    sys.exit(main())


__all__ = ["main", "run"]
