"""HTTP edge -- FastAPI app factory and box routes."""

from savings.api.app import create_app

__all__ = ["create_app"]
