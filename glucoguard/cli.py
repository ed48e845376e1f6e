#!/usr/bin/env python3
"""
GlucoGuard Command Line Interface

Usage:
    glucoguard demo --value <mg/dL> [--network <id>] [--signer <address>] [--disclose]
    glucoguard status [--network <id>] [--disconnected]

Exit codes: 0 success, 1 failed or discarded, 2 invalid input.
"""

import argparse
import asyncio
import json
import logging
import sys

from . import config
from .errors import InitializationError, InputValidationError
from .logging_config import NoiseFilter, configure_logging

logger = logging.getLogger(__name__)

DEFAULT_SIGNER = "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


async def _run_demo(args) -> int:
    from .session import build_devnet_session
    from .store import OperationKind

    session = build_devnet_session(network_id=args.network, signer_id=args.signer)
    coordinator = session.coordinator
    try:
        try:
            task = coordinator.start(OperationKind.SUBMIT, args.value)
        except InputValidationError as e:
            print(f"✗ {e}", file=sys.stderr)
            return 2

        submitted = await task
        _print_json(submitted.to_dict())
        if not submitted.succeeded():
            return 1

        if args.switch_network_during_check is not None:
            session.ledger.confirm_gate.pause()
            check = coordinator.start(OperationKind.CHECK, args.disclose)
            while session.ledger.confirm_gate.waiting == 0 and not check.done():
                await asyncio.sleep(0)
            session.environment.switch_network(args.switch_network_during_check)
            session.ledger.confirm_gate.resume()
            checked = await check
        else:
            checked = await coordinator.check_risk(disclose=args.disclose)
        _print_json(checked.to_dict())
        _print_json(coordinator.store.to_dict())
        return 0 if checked.succeeded() else 1
    finally:
        session.close()


def cmd_demo(args) -> int:
    """Submit a value and check risk on the local devnet."""
    return asyncio.run(_run_demo(args))


def cmd_status(args) -> int:
    """Print the derived system status for a network."""
    from .session import build_devnet_session
    from .status import status_report

    signer = None if args.disconnected else args.signer
    session = build_devnet_session(network_id=args.network, signer_id=signer)
    try:
        try:
            asyncio.run(session.manager.ensure_ready(args.network))
        except InitializationError as e:
            print(f"✗ {e}", file=sys.stderr)
        _print_json(status_report(session.coordinator))
    finally:
        session.close()
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="GlucoGuard encrypted glucose check CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  glucoguard demo --value 150 --disclose
  glucoguard demo --value 150 --switch-network-during-check 11155111
  glucoguard status --network 31337
        """
    )
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="Log level")
    parser.add_argument("--plain-logs", action="store_true", help="Plain text instead of JSON logs")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    demo_parser = subparsers.add_parser("demo", help="Run submit and check on the local devnet")
    demo_parser.add_argument("-v", "--value", required=True, help="Glucose value in mg/dL")
    demo_parser.add_argument("-n", "--network", type=int, default=config.LOCAL_CHAIN_ID, help="Network id")
    demo_parser.add_argument("-s", "--signer", default=DEFAULT_SIGNER, help="Signer address")
    demo_parser.add_argument("-d", "--disclose", action="store_true", help="Decrypt the risk result")
    demo_parser.add_argument(
        "--switch-network-during-check",
        type=int,
        metavar="ID",
        help="Switch to this network while the check transaction is pending",
    )

    status_parser = subparsers.add_parser("status", help="Show system status")
    status_parser.add_argument("-n", "--network", type=int, default=config.LOCAL_CHAIN_ID, help="Network id")
    status_parser.add_argument("-s", "--signer", default=DEFAULT_SIGNER, help="Signer address")
    status_parser.add_argument("--disconnected", action="store_true", help="No wallet connected")

    args = parser.parse_args(argv)

    level = "DEBUG" if config.is_debug() else args.log_level
    configure_logging(level=level, json_format=not args.plain_logs and config.LOG_JSON)

    failed = [name for name, ok in config.validate_config().items() if not ok]
    if failed:
        logger.warning("Configuration checks failed: %s", ", ".join(failed))
        if config.is_production():
            print(f"✗ Invalid configuration: {', '.join(failed)}", file=sys.stderr)
            return 1

    noise = NoiseFilter()
    noise.install()
    try:
        if args.command == "demo":
            return cmd_demo(args)
        elif args.command == "status":
            return cmd_status(args)
        parser.print_help()
        return 0
    finally:
        noise.uninstall()


if __name__ == "__main__":
    sys.exit(main())
