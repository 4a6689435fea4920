"""Strategy evaluation and trade-lifecycle simulation."""

__version__ = "0.1.0"
