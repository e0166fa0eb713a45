"""Command-line entry point for the broker.

    blacksmith serve [--host HOST] [--port PORT]
    blacksmith catalog [DIR ...]

Configuration comes from the environment (see ``BrokerSettings.from_env``).
"""

from __future__ import annotations

import argparse
import sys

import uvicorn

from .catalog import CatalogError, load_catalog
from .main import create_app
from .settings import BrokerSettings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blacksmith",
        description="Open Service Broker for BOSH-deployed services",
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the broker API (default)")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=3000)

    catalog = sub.add_parser("catalog", help="Load the catalog and list its plans")
    catalog.add_argument(
        "dirs", nargs="*", help="Service directories (default: $BLACKSMITH_SERVICES)",
    )
    return parser


def _serve(settings: BrokerSettings, args: argparse.Namespace) -> int:
    try:
        app = create_app(settings)
    except (ValueError, CatalogError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def _catalog(settings: BrokerSettings, args: argparse.Namespace) -> int:
    dirs = args.dirs or list(settings.catalog_dirs)
    if not dirs:
        print("Error: no service directories given", file=sys.stderr)
        return 1
    try:
        catalog = load_catalog(*dirs, log_config=settings.logging_config())
    except CatalogError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    for key in catalog.keys():
        print(f"{key.service_id}/{key.plan_id}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = BrokerSettings.from_env()
    if args.command == "catalog":
        return _catalog(settings, args)
    if args.command is None:
        args = build_parser().parse_args(["serve"])
    return _serve(settings, args)


if __name__ == "__main__":
    raise SystemExit(main())
