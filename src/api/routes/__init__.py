from fastapi import FastAPI

from . import assignments, health, sessions, test_types


def register_routes(app: FastAPI) -> None:
    """Attach all API routers to the FastAPI application."""
    app.include_router(health.router)
    app.include_router(test_types.router)
    app.include_router(assignments.router)
    app.include_router(sessions.router)
