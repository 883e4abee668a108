"""
UDP server that drives a Khepera III (K3) over the network.

Accepts right and left wheel speeds on the control port, serves IR and
odometer snapshots on the data port, and stops the wheels when the control
channel goes silent.
"""
from __future__ import annotations

import argparse
import logging
import sys

from k3driver.common.logging_config import LOG_LEVELS, configure_logging, verbosity_to_level
from k3driver.config import ServiceConfig
from k3driver.constants import (
    CONTROL_PORT,
    CONTROL_TIMEOUT_S,
    DATA_PORT,
    K3DRV_HOST,
    LOG_LEVEL,
    MAX_WHEEL_SPEED,
    STRICT_NUMBERS,
    VERBOSITY,
)
from k3driver.errors import TransportError
from k3driver.services.gateway import SimulatedGateway
from k3driver.services.supervisor import ServiceSupervisor


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="k3driver", description="Khepera III UDP control and telemetry driver"
    )
    parser.add_argument(
        "-p",
        "--control-port",
        type=int,
        default=CONTROL_PORT,
        help=f"UDP port to listen on for control (default: {CONTROL_PORT})",
    )
    parser.add_argument(
        "-P",
        "--data-port",
        type=int,
        default=DATA_PORT,
        help=f"UDP port to listen on for data (default: {DATA_PORT})",
    )
    parser.add_argument(
        "-t",
        "--timeout",
        type=float,
        default=CONTROL_TIMEOUT_S,
        help="Seconds without a control request before the wheels are stopped; 0 disables "
        f"(default: {CONTROL_TIMEOUT_S:g})",
    )
    parser.add_argument(
        "-v",
        "--verbosity",
        type=int,
        default=VERBOSITY,
        help="Verbosity level (0=quiet, 1=default, 2=verbose, 3=very verbose)",
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Same as --verbosity 0"
    )
    parser.add_argument("--host", default=K3DRV_HOST, help="Bind address for both ports")
    parser.add_argument(
        "--max-speed",
        type=int,
        default=MAX_WHEEL_SPEED,
        help=f"Clamp wheel speeds to +/- this value (default: {MAX_WHEEL_SPEED})",
    )
    parser.add_argument(
        "--strict-numbers",
        action="store_true",
        default=STRICT_NUMBERS,
        help="Drop CTRL requests whose speeds are not integers instead of reading them as 0",
    )
    parser.add_argument(
        "--log-level",
        choices=list(LOG_LEVELS),
        help="Set log level for all loggers (overrides --verbosity)",
    )
    return parser


def resolve_log_level(args: argparse.Namespace) -> int:
    """Explicit --log-level > K3DRV_LOG_LEVEL env > verbosity."""
    if args.log_level:
        return LOG_LEVELS[args.log_level]
    if LOG_LEVEL is not None:
        return LOG_LEVEL
    return verbosity_to_level(args.verbosity)


def build_config(args: argparse.Namespace) -> ServiceConfig:
    """Validate the CLI options. The resolved log level is applied to every session logger."""
    return ServiceConfig.build(
        control_port=args.control_port,
        data_port=args.data_port,
        timeout=args.timeout,
        verbosity=args.verbosity,
        host=args.host,
        max_wheel_speed=args.max_speed,
        strict_numbers=args.strict_numbers,
        log_level=resolve_log_level(args),
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.quiet:
        args.verbosity = 0

    try:
        config = build_config(args)
    except ValueError as e:
        parser.error(str(e))

    configure_logging(resolve_log_level(args))
    logging.info("Using simulated K3 gateway (max wheel speed %d)", config.max_wheel_speed)

    gateway = SimulatedGateway(max_wheel_speed=config.max_wheel_speed)
    supervisor = ServiceSupervisor(config, gateway)
    try:
        status = supervisor.run()
    except TransportError as e:
        logging.critical("%s", e)
        status = 1
    finally:
        gateway.close()
    if status:
        logging.critical("k3driver exiting after a fatal session failure")
    return status


if __name__ == "__main__":
    sys.exit(main())
