"""Command-line interface for shopfront."""

import argparse
import json
import logging
import sys

from . import __version__
from .catalog import ItemCatalog
from .cart_store import CartStore
from .documents import open_document_store
from .errors import ShopError
from .order_ledger import OrderLedger
from .settings import load_settings


def get_catalog_and_ledger() -> tuple[ItemCatalog, OrderLedger]:
    """Build the catalog and order ledger over the configured store."""
    store = open_document_store(load_settings())
    catalog = ItemCatalog(store)
    return catalog, OrderLedger(store, catalog, CartStore(store, catalog))


def cmd_items_list(args: argparse.Namespace) -> int:
    """List catalog items."""
    try:
        catalog, _ = get_catalog_and_ledger()
        items = catalog.list_items()

        if args.json:
            print(json.dumps([item.to_dict() for item in items], indent=2))
            return 0

        if not items:
            print("No items in the catalog.")
            return 0

        print(f"Items ({len(items)}):")
        print()
        for item in items:
            print(f"  {item.id}  {item.title}")
            print(f"           price {item.price:.2f}  stock {item.quantity}")
        return 0

    except ShopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_items_add(args: argparse.Namespace) -> int:
    """Add a catalog item whose image is already hosted."""
    try:
        catalog, _ = get_catalog_and_ledger()
        item = catalog.create(
            title=args.title,
            description=args.description,
            image=args.image_url,
            price=args.price,
            discounted=args.discounted,
            total_price=args.total_price,
            quantity=args.quantity,
        )
        print(f"Added item: {item.id}")
        print(f"  Title: {item.title}")
        print(f"  Price: {item.price:.2f}")
        return 0

    except ShopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_set_status(args: argparse.Namespace) -> int:
    """Move an order to a new status."""
    try:
        _, ledger = get_catalog_and_ledger()
        order = ledger.update_status(
            args.order_id,
            args.status,
            tracking_number=args.tracking_number,
            notes=args.notes,
        )
        print(f"Order {order.order_number} is now {order.status}")
        if order.tracking_number:
            print(f"  Tracking: {order.tracking_number}")
        return 0

    except ShopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        settings = load_settings()
        logging.basicConfig(
            level=settings.log_level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        backend = "MongoDB" if settings.database_url else f"JSON files in {settings.data_dir}"
        print("Starting shopfront API server...")
        print(f"Storage: {backend}")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # When reload is enabled, uvicorn requires the app as an import string
        app_target = "shopfront.api:app" if args.reload else None
        if app_target is None:
            from .api import app
            app_target = app

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
            log_level=settings.log_level.lower(),
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="shopfront",
        description="Item catalog, shopping cart and order backend.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", "-p", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    # items (subcommand group)
    items_parser = subparsers.add_parser("items", help="Manage catalog items")
    items_subparsers = items_parser.add_subparsers(dest="items_command")

    # items list
    items_list_parser = items_subparsers.add_parser("list", help="List catalog items")
    items_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # items add
    items_add_parser = items_subparsers.add_parser("add", help="Add a catalog item")
    items_add_parser.add_argument("--title", required=True, help="Title (3-50 characters)")
    items_add_parser.add_argument(
        "--description", required=True, help="Description (20-150 characters)"
    )
    items_add_parser.add_argument("--price", type=float, required=True, help="Unit price")
    items_add_parser.add_argument(
        "--discounted", type=float, default=0.0, help="Discount amount (default: 0)"
    )
    items_add_parser.add_argument(
        "--total-price", type=float, required=True, help="Price after discount"
    )
    items_add_parser.add_argument(
        "--quantity", type=int, default=1, help="Stock quantity (default: 1)"
    )
    items_add_parser.add_argument("--image-url", required=True, help="URL of a hosted image")

    # orders (subcommand group)
    orders_parser = subparsers.add_parser("orders", help="Manage orders")
    orders_subparsers = orders_parser.add_subparsers(dest="orders_command")

    # orders set-status
    set_status_parser = orders_subparsers.add_parser(
        "set-status", help="Move an order to a new status"
    )
    set_status_parser.add_argument("order_id", help="Order ID")
    set_status_parser.add_argument("status", help="New status")
    set_status_parser.add_argument("--tracking-number", "-t", help="Carrier tracking number")
    set_status_parser.add_argument("--notes", "-n", help="Free-form notes")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    # Handle items subcommands
    if args.command == "items":
        if not getattr(args, "items_command", None):
            parser.parse_args(["items", "--help"])
            return 0
        if args.items_command == "list":
            return cmd_items_list(args)
        elif args.items_command == "add":
            return cmd_items_add(args)

    # Handle orders subcommands
    if args.command == "orders":
        if not getattr(args, "orders_command", None):
            parser.parse_args(["orders", "--help"])
            return 0
        if args.orders_command == "set-status":
            return cmd_orders_set_status(args)

    commands = {
        "serve": cmd_serve,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
