"""HTTP surface for the checkout core."""
from .main import create_app

__all__ = ["create_app"]
