"""todovault - plain-text structured task store."""

__version__ = "0.1.0"
