"""A small HTTP file server with background downloads, and a client for it."""

__version__ = "0.1.0"
__all__ = ["client", "downloads", "listing", "server"]