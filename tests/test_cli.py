"""Tests for the CLI."""

import json

import pytest

from shopfront.cart_store import CartStore
from shopfront.catalog import ItemCatalog
from shopfront.cli import create_parser, main
from shopfront.documents import JsonDocumentStore
from shopfront.order_ledger import OrderLedger

ADD_ARGS = [
    "items",
    "add",
    "--title",
    "Desk Lamp",
    "--description",
    "A warm desk lamp with an adjustable arm and base.",
    "--price",
    "20",
    "--discounted",
    "5",
    "--total-price",
    "15",
    "--quantity",
    "3",
    "--image-url",
    "https://cdn.shopfront.io/items/lamp.png",
]


class TestItemsCommands:
    def test_list_empty(self, data_dir, capsys):
        assert main(["items", "list"]) == 0
        assert "No items in the catalog." in capsys.readouterr().out

    def test_add_then_list(self, data_dir, capsys):
        assert main(ADD_ARGS) == 0
        out = capsys.readouterr().out
        assert "Added item:" in out

        assert main(["items", "list", "--json"]) == 0
        items = json.loads(capsys.readouterr().out)
        assert len(items) == 1
        assert items[0]["title"] == "Desk Lamp"
        assert items[0]["totalPrice"] == 15.0

    def test_add_invalid(self, data_dir, capsys):
        args = list(ADD_ARGS)
        args[args.index("--title") + 1] = "ab"

        assert main(args) == 1
        err = capsys.readouterr().err
        assert err.startswith("Error: Invalid fields")
        assert "title" in err


class TestOrdersCommands:
    @pytest.fixture
    def order(self, data_dir, shipping_info):
        store = JsonDocumentStore(data_dir)
        catalog = ItemCatalog(store)
        carts = CartStore(store, catalog)
        item = catalog.create(
            title="Desk Lamp",
            description="A warm desk lamp with an adjustable arm and base.",
            image="https://cdn.shopfront.io/items/lamp.png",
            price=20.0,
            total_price=20.0,
        )
        carts.add_item("u1", item.id, 1)
        return OrderLedger(store, catalog, carts).create_order("u1", shipping_info).order

    def test_set_status(self, order, capsys):
        assert main(["orders", "set-status", order.id, "processing"]) == 0
        assert main(["orders", "set-status", order.id, "shipped", "--tracking-number", "1Z999"]) == 0

        out = capsys.readouterr().out
        assert f"Order {order.order_number} is now shipped" in out
        assert "Tracking: 1Z999" in out

    def test_illegal_transition(self, order, capsys):
        assert main(["orders", "set-status", order.id, "delivered"]) == 1
        assert "Cannot change order status" in capsys.readouterr().err

    def test_unknown_order(self, data_dir, capsys):
        assert main(["orders", "set-status", "missing", "processing"]) == 1
        assert "Order not found" in capsys.readouterr().err


class TestServe:
    def test_serve_runs_uvicorn(self, data_dir, monkeypatch):
        import uvicorn

        calls = []
        monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

        assert main(["serve", "--port", "9000"]) == 0
        app, kwargs = calls[0]
        assert kwargs["port"] == 9000
        assert kwargs["reload"] is False

    def test_reload_uses_import_string(self, data_dir, monkeypatch):
        import uvicorn

        calls = []
        monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append(app))

        assert main(["serve", "--reload"]) == 0
        assert calls == ["shopfront.api:app"]


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "shopfront" in capsys.readouterr().out


def test_parser_defaults():
    args = create_parser().parse_args(["items", "add", "--title", "t", "--description", "d",
                                       "--price", "1", "--total-price", "1", "--image-url", "u"])
    assert args.quantity == 1
    assert args.discounted == 0.0
