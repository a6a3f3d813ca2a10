"""FastAPI application package for accounting declaration batches."""

from __future__ import annotations


def get_app():
    """Return the FastAPI application without importing it eagerly.

    Alembic and the command line scripts import this package without needing
    the routers, so the app is only built on demand.
    """

    from .main import app

    return app


__all__ = ["get_app"]
