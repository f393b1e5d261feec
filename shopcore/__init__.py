"""Cart-to-order transaction engine."""

__version__ = "1.0.0"
