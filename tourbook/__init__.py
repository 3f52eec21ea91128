"""Tour booking marketplace service."""

__version__ = "1.0.0"
