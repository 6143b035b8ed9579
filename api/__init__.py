"""
API Module for the Skale lead qualification service.

FastAPI application with routes for:
- Form configuration
- Form wizard progress and lead management
- Chat interactions
"""

from .main import create_app, app

__all__ = ["create_app", "app"]
