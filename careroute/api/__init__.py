"""
API package for CareRoute.
"""

from .main import app

__all__ = ["app"]
