"""Route modules exposed by the API package."""

from . import ping, stats, tickets

__all__ = ["ping", "stats", "tickets"]
