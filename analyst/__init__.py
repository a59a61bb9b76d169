"""analyst - a financial research agent core."""

__version__ = "0.1.0"
