"""API Package.

FastAPI server for the board sync service.
"""

from api.server import create_app, app

__all__ = [
    "create_app",
    "app",
]
