"""
FastAPI server module for the OODA agent.

Provides REST endpoints to list tools and run tasks.
"""

from .main import app, create_app

__all__ = ["app", "create_app"]
