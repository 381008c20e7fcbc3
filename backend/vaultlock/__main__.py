"""Entry point for the VaultLock service.

Usage:
    python -m vaultlock [options]

Options:
    --host HOST                 Bind address (default: 127.0.0.1)
    --port PORT                 HTTP port (default: VAULTLOCK_PORT or 8787)
    --data-dir DIR              Device storage directory (default: ~/.vaultlock)
    --platform NAME             auto, web or native (default: VAULTLOCK_PLATFORM or auto)
    --database-url URL          Profile database (default: DATABASE_URL or Secrets Manager)
    --auth-url URL              Auth provider base URL (default: AUTH_URL)
    --auto-lock SECS            Idle timeout before the first settings change (default: 0, off)
    --max-failed-attempts N     Failed unlocks before a lockout, 0 disables (default: 5)
    --log-dir DIR               Log directory (default: ~/.vaultlock/logs)
    --debug                     Debug output on the console
"""

import argparse
import logging

import uvicorn

from .config import LockConfig
from .logging import get_logger, setup_logging
from .main import create_app


def parse_args() -> tuple[LockConfig, bool]:
    parser = argparse.ArgumentParser(description="VaultLock app lock service")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    parser.add_argument("--port", type=int, default=8787, help="HTTP port")
    parser.add_argument("--data-dir", default="", help="Device storage directory")
    parser.add_argument("--platform", default="", choices=["", "auto", "web", "native"], help="Storage platform")
    parser.add_argument("--database-url", default="", help="Profile database URL")
    parser.add_argument("--auth-url", default="", help="Auth provider base URL")
    parser.add_argument("--auto-lock", type=int, default=0, help="Default idle timeout (seconds, 0 = off)")
    parser.add_argument("--max-failed-attempts", type=int, default=5, help="Failed unlocks before lockout")
    parser.add_argument("--log-dir", default="", help="Log directory")
    parser.add_argument("--debug", action="store_true", help="Debug output on the console")

    args = parser.parse_args()

    config = LockConfig(
        data_dir=args.data_dir,
        platform=args.platform,
        host=args.host,
        port=args.port,
        log_dir=args.log_dir,
        database_url=args.database_url,
        auth_url=args.auth_url,
        default_auto_lock_seconds=args.auto_lock,
        max_failed_attempts=args.max_failed_attempts,
    )
    return config, args.debug


def main():
    config, debug = parse_args()
    setup_logging(
        log_dir=config.log_dir or None,
        console_level=logging.DEBUG if debug else logging.INFO,
    )
    logger = get_logger("main")

    logger.info("VaultLock starting")
    logger.info(f"  Address:    {config.host}:{config.port}")
    logger.info(f"  Data dir:   {config.data_path}")
    logger.info(f"  Platform:   {config.platform}")
    logger.info(f"  Auth:       {config.auth_url}")

    uvicorn.run(
        create_app(config=config),
        host=config.host,
        port=config.port,
        log_level="warning",
    )


if __name__ == "__main__":
    main()
