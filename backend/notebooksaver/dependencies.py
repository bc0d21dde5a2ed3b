"""FastAPI dependencies handing the wired services to route handlers."""

from fastapi import Request

from notebooksaver.services.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    """The ServiceContainer stored on app.state by the lifespan (or by tests)."""
    return request.app.state.container
