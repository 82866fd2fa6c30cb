"""
asyncreq HTTP API Server.

Usage:
    # Start server
    uvicorn asyncreq.server:app --reload

    # Or programmatically
    from asyncreq.server import app, create_app

    # Custom configuration
    app = create_app(settings)
"""

from asyncreq.server.app import app, create_app

__all__ = ["app", "create_app"]
