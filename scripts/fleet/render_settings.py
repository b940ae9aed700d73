#!/usr/bin/env python3
"""Print the health check settings each inventory router would receive."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from appliance_fleet.health import health_settings  # noqa: E402
from fleet_integration import ScopedSettings, build_conf  # noqa: E402
from fleet_integration.config_extensions import apply_global_overrides  # noqa: E402
from fleet_integration.drivers import InventoryDirectory  # noqa: E402
from fleet_manager.config import load_config  # noqa: E402


LOG = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("/etc/appliance-fleet/manager.yaml"),
        help="Path to the manager configuration file",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    config = load_config(args.config)
    conf = build_conf(config.config_files)
    apply_global_overrides(conf, config.router)
    scoped = ScopedSettings(conf, zones=config.zones, clusters=config.clusters)

    networks = InventoryDirectory(config.inventory.path).load()
    if networks is None:
        LOG.error("inventory %s could not be loaded", config.inventory.path)
        return 1

    rendered = {
        router.router_id: health_settings(scoped, router)
        for routers in networks.values()
        for router in routers
    }
    print(json.dumps(rendered, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    sys.exit(main())
