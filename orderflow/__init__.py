"""Orderflow - storefront checkout and fulfillment core."""

__version__ = "1.0.0"
