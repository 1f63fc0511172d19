"""Utility modules."""

from starfish_gateway.utils.locks import ReadWriteLock
from starfish_gateway.utils.validation import parse_max_keys

__all__ = ["ReadWriteLock", "parse_max_keys"]
