"""Typed board columns and the automation rule engine that runs against them."""

__version__ = "0.1.0"
