"""Entry point for the standalone fleet manager."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from threading import Event

from appliance_fleet.manager import ApplianceManager
from fleet_integration import ListenerRegistry, ScopedSettings, build_conf
from fleet_integration.config_extensions import apply_global_overrides
from fleet_integration.drivers import (
    InventoryDirectory,
    LoggingListener,
    ScriptCommandChannel,
    ScriptLifecycleDriver,
)

from .config import load_config
from .timers import InventoryWatcher, build_health_tasks

LOG = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the virtual router fleet manager")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("/etc/appliance-fleet/manager.yaml"),
        help="Path to the manager configuration file",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    config = load_config(args.config)

    conf = build_conf(config.config_files)
    apply_global_overrides(conf, config.router)
    scoped = ScopedSettings(conf, zones=config.zones, clusters=config.clusters)

    registry = ListenerRegistry()
    registry.register("log", LoggingListener())

    directory = InventoryDirectory(config.inventory.path)
    manager = ApplianceManager(
        directory,
        ScriptCommandChannel(config.channel.command, timeout=config.channel.timeout),
        ScriptLifecycleDriver(config.lifecycle.commands, timeout=config.lifecycle.timeout),
        scoped,
        events=registry,
        max_workers=config.workers,
    )

    stop_event = Event()

    watcher = InventoryWatcher(
        directory,
        manager.fleet,
        config.inventory.interval,
        stop_event,
        health=manager.health,
    )
    # Perform an initial poll so the timers see the fleet immediately
    try:
        watcher.poll()
    except Exception:  # pragma: no cover - logged inside watcher
        LOG.exception("initial inventory poll failed for %s", config.inventory.path)
    watcher.start()

    tasks = build_health_tasks(
        manager, scoped, stop_event, reaper_interval=config.reaper_interval
    )
    for task in tasks:
        task.start()
    LOG.info("fleet manager started with %d timers", len(tasks))

    def _shutdown(signum, frame):  # pragma: no cover - signal handler
        LOG.info("received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    try:
        while not stop_event.is_set():
            stop_event.wait(1.0)
    except KeyboardInterrupt:  # pragma: no cover - fallback if signal not set
        stop_event.set()

    watcher.join()
    for task in tasks:
        task.join()

    LOG.info("fleet manager stopped")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
