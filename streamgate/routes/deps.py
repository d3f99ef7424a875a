"""Shared route dependencies."""

from fastapi import Request

from streamgate.services.context import ServiceContext


def get_context(request: Request) -> ServiceContext:
    """The ServiceContext created in the application lifespan."""
    return request.app.state.context
