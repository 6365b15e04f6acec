"""DNS-over-HTTPS filtering relay."""

__version__ = "0.1.0"
