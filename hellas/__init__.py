"""Hellas launcher modules."""

from . import clients
from . import store
from . import utils

__all__ = ["clients", "store", "utils"]
