"""Posts with an optional image, over a small REST API."""

__version__ = "0.1.0"
