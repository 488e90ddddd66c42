"""shopfront - item catalog, shopping cart and order placement API."""

__version__ = "0.1.0"
