"""Brewery core: ingredient records, recipe scoring and persistent storage."""

__version__ = "3.4.0"
