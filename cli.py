#!/usr/bin/env python3
"""
Command-line interface for the offer pricing service.

Usage:
    uv run python cli.py [command] [options]

Commands:
    sweep       Run one expire/activate sweep against the catalog data
    offers      List offers
    test        Run the test suite
    serve       Start the API server (and the expiration scheduler)

Examples:
    uv run python cli.py sweep
    uv run python cli.py offers --current
    uv run python cli.py serve --reload
"""

import argparse
import logging
import subprocess
import sys
from pathlib import Path
from typing import Optional

from pricing.config import PricingConfig


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
        datefmt="%H:%M:%S",
    )


def _build_controller(data_dir: Path):
    from catalog.data_store import DataStore
    from pricing.lifecycle import OfferLifecycleController

    return OfferLifecycleController(data_store=DataStore(data_dir=data_dir))


def run_sweep(data_dir: Path) -> int:
    """Run one scheduler tick and print a summary."""
    from pricing.scheduler import ExpirationScheduler

    controller = _build_controller(data_dir)
    scheduler = ExpirationScheduler(controller)
    result = scheduler.tick()
    if result is None:
        print("Sweep failed; see log output above")
        return 1

    print(f"Sweep at {result.ran_at.isoformat()}")
    for sweep in (result.expired, result.activated):
        print(
            f"  {sweep.kind:<8} processed={sweep.processed} "
            f"succeeded={len(sweep.succeeded)} failed={len(sweep.failed)} "
            f"products={sweep.products_updated}"
        )
        for offer_id, reason in sweep.failed.items():
            print(f"    ✗ {offer_id}: {reason}")
    return 0 if result.expired.ok and result.activated.ok else 1


def run_list_offers(data_dir: Path, active: Optional[bool], current: bool) -> int:
    """Print offers with their derived state."""
    controller = _build_controller(data_dir)
    now = controller.clock()
    offers = controller.list_offers(active=active, current=current)
    if not offers:
        print("No offers found")
        return 0
    for offer in offers:
        types = ",".join(pt.value for pt in offer.price_types)
        print(
            f"{offer.id:<28} {offer.state(now).value:<12} {offer.discount:>5g}% "
            f"{types:<28} {offer.start_date:%Y-%m-%d} -> {offer.end_date:%Y-%m-%d} "
            f"({len(offer.products)} products)"
        )
    return 0


def run_tests(args: list[str]) -> int:
    """Run the test suite."""
    cmd = ["uv", "run", "pytest"] + args
    return subprocess.run(cmd).returncode


def run_server(host: str, port: int, reload: bool) -> int:
    """Start the API server."""
    cmd = ["uv", "run", "uvicorn", "api.main:app", f"--host={host}", f"--port={port}"]
    if reload:
        cmd.append("--reload")

    print(f"Starting server at http://{host}:{port}")
    print(f"API docs available at http://{host}:{port}/docs")
    return subprocess.run(cmd).returncode


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point."""
    config = PricingConfig.from_env()

    parser = argparse.ArgumentParser(
        description="Offer Pricing Service CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s sweep
  %(prog)s offers --active
  %(prog)s test -v
  %(prog)s serve --reload
        """,
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=config.data_dir,
        help="Directory holding products.json and offers.json",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("sweep", help="Run one expire/activate sweep")

    offers_parser = subparsers.add_parser("offers", help="List offers")
    active_group = offers_parser.add_mutually_exclusive_group()
    active_group.add_argument("--active", dest="active", action="store_true", default=None)
    active_group.add_argument("--inactive", dest="active", action="store_false")
    offers_parser.add_argument("--current", action="store_true", help="Only offers in their window now")
    offers_parser.set_defaults(active=None)

    test_parser = subparsers.add_parser("test", help="Run the test suite")
    test_parser.add_argument(
        "pytest_args",
        nargs="*",
        default=[],
        help="Arguments to pass to pytest",
    )

    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args(argv)
    _configure_logging(config.log_level)

    if args.command == "sweep":
        return run_sweep(args.data_dir)
    if args.command == "offers":
        return run_list_offers(args.data_dir, args.active, args.current)
    if args.command == "test":
        return run_tests(args.pytest_args)
    if args.command == "serve":
        return run_server(args.host, args.port, args.reload)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
