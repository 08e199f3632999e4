#!/usr/bin/env python3
from __future__ import annotations

__version__ = "0.4.0"

import argparse
import logging
import signal

from config_loader import apply_env, apply_overrides, load_config
from relay import SeleneRelay
from relay.log_setup import configure_logging

# Console only until the config has been loaded
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Relay Selene serial nodes to an MQTT broker")
    parser.add_argument("--debug", action="store_true", help="Enable debug output")
    parser.add_argument("--config", action="append", default=None, help="Path to TOML config file (can be specified multiple times; overrides default config loading)")
    parser.add_argument("--broker-url", default=None, help="Broker URL, e.g. mqtt://localhost:1883")
    parser.add_argument("--baud", type=int, default=None, help="Serial baud rate")
    parser.add_argument("--console", action="store_true", help="Start the interactive debug console")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    config = apply_env(load_config(args.config))
    config = apply_overrides(config, broker_url=args.broker_url, baud_rate=args.baud, console=args.console)
    configure_logging(config, debug=args.debug)

    relay = SeleneRelay(config, debug=args.debug, version=__version__)

    # Ensure signals from systemd (SIGTERM) and ctrl-c (SIGINT) are handled
    signal.signal(signal.SIGTERM, relay.handle_signal)
    signal.signal(signal.SIGINT, relay.handle_signal)

    relay.run()


if __name__ == "__main__":
    main()
