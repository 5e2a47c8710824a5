"""
Pages Package
=============

Server-rendered HTML pages of the portal.

Main Components:
----------------
- routes.py: FastAPI router with the home (/) and profile (/profile) pages

Usage:
------
    from portal.app.pages import pages_router
    app.include_router(pages_router)
"""

from .routes import pages_router

__all__ = ["pages_router"]
