# src/gh_notif_bridge/main.py
"""Main entry point for the notification relay."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from gh_notif_bridge.core.config import AppConfig, ConfigError, load_config
from gh_notif_bridge.core.log import configure_logging
from gh_notif_bridge.core.settings import Settings, settings
from gh_notif_bridge.services.matrix import MatrixClient, load_matrix_config
from gh_notif_bridge.services.worker import AccountWorker, create_worker

logger = logging.getLogger(__name__)


async def resolve_bot_user_id(app_config: AppConfig, app_settings: Settings) -> str:
    """Ask the homeserver who the configured access token belongs to."""

    matrix = MatrixClient(
        load_matrix_config(app_config.matrix_hs_url, app_config.matrix_access_token, app_settings)
    )
    try:
        return await matrix.whoami()
    finally:
        await matrix.close()


async def run(app_config: AppConfig, app_settings: Settings) -> None:
    """Run one worker per configured account until one of them fails."""

    user_id = await resolve_bot_user_id(app_config, app_settings)
    logger.info("Operating as %s", user_id)

    workers: list[AccountWorker] = [
        create_worker(account, app_config, user_id, app_settings=app_settings)
        for account in app_config.accounts.values()
    ]
    try:
        async with asyncio.TaskGroup() as group:
            for worker in workers:
                group.create_task(worker.run(), name=f"account:{worker.account.name}")
    finally:
        for worker in workers:
            await worker.close()


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Post GitHub notifications into Matrix rooms.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help=f"Path to the YAML config file (default: {settings.config_path})",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Console entry point. Returns the process exit status."""

    args = _parse_args(argv)
    configure_logging(args.log_level or settings.log_level)

    try:
        app_config = load_config(args.config or settings.config_path)
    except ConfigError as exc:
        logger.error("%s", exc)
        return 1

    try:
        asyncio.run(run(app_config, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        return 0
    except Exception:
        logger.exception("Relay stopped after an unrecoverable error")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
