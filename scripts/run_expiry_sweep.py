#!/usr/bin/env python3
"""
Run a single premium expiry sweep.

Loads the tier configuration, connects to the configured store, demotes
every user whose subscription has lapsed and prints a JSON summary. Useful
from cron or a CI job when the in-process sweep timer is not running.
"""

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from shared.config import get_settings
from shared.logging import configure_logging
from service_premium.app.config import apply_settings, load_premium_config
from service_premium.app.factory import create_entitlement_system


async def sweep(config_path: Path, *, driver: Optional[str], dsn: Optional[str]) -> dict:
    """Execute one expiry sweep and return the summary."""
    overrides = {}
    if driver:
        overrides["db_driver"] = driver
    if dsn:
        overrides["postgres_dsn"] = dsn
    settings = get_settings(**overrides)

    config = apply_settings(load_premium_config(config_path), settings)
    system = await create_entitlement_system(config, start_expiry=False)
    try:
        report = await system.check_expirations()
    finally:
        await system.shutdown()

    return asdict(report)


def _parse_args() -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Demote premium users whose subscriptions have expired.")
    parser.add_argument("--config", type=Path, default=settings.config_file, help="Path to the premium YAML configuration")
    parser.add_argument("--driver", default=None, help="Override the configured storage driver (memory, postgres)")
    parser.add_argument("--dsn", default=None, help="Override the PostgreSQL DSN")
    parser.add_argument("--log-level", default=settings.log_level, help="Log level")
    parser.add_argument("--pretty", action="store_true", help="Human-readable logs instead of JSON")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    args = parser.parse_args()
    if args.config is None:
        parser.error("--config is required when PREMIUM_CONFIG_FILE is not set")
    return args


def main() -> int:
    args = _parse_args()
    configure_logging("premium-expiry", args.log_level, json_logs=not args.pretty)
    try:
        summary = asyncio.run(sweep(Path(args.config), driver=args.driver, dsn=args.dsn))
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[expiry-sweep] failed: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(summary, indent=2))

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2))

    return 1 if summary["failed"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
