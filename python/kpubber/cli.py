#! /usr/bin/env python3

import asyncio
import logging
import signal
import sys
from importlib import metadata

import httpx

from . import store
from .config import Config, load_config
from .cycle import CycleController
from .errorhandling import EXIT_INVALID_CONFIG, ConfigError, FatalError
from .logs import setup_logging
from .publicip import PublicIPResolver
from .schedule import Scheduler, parse_schedule

logger = logging.getLogger("kpubber")


async def async_main(config: Config):
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    node_store = await store.connect(config)
    async with httpx.AsyncClient(
        timeout=config.http_timeout,
        headers={"User-Agent": f"kpubber/{metadata.version('kpubber')}"},
    ) as http_client:
        controller = CycleController(
            config, node_store, PublicIPResolver(http_client, config.mirrors)
        )
        schedule = None if config.cron_disable else parse_schedule(config.cron)
        logger.info(
            f"Publishing public ip on node {config.node_name} "
            f"({'once' if schedule is None else config.cron})"
        )
        await Scheduler(controller.run_cycle, schedule).run(stop)


def main():
    try:
        config = load_config()
    except ConfigError as ex:
        setup_logging()
        logger.critical(ex.message)
        sys.exit(EXIT_INVALID_CONFIG)

    setup_logging(config.log_level, config.log_format)
    try:
        asyncio.run(async_main(config))
    except FatalError as ex:
        sys.exit(ex.exit_code)


if __name__ == "__main__":
    main()
