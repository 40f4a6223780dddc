"""
User storage backends.

Two interchangeable relational stores share the `UserStore` protocol:
an embedded SQLite file and a client/server PostgreSQL database.
"""

from authgate.storage.base import UserStore

__all__ = ["UserStore"]
