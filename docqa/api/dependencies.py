"""Dependency functions for the HTTP API.

Services are built once in the application lifespan and stored on app.state.
"""

from typing import Optional

from fastapi import Header, HTTPException, Request, status

from docqa.services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    """Get the service container created at startup.

    Raises:
        HTTPException: If the services have not been initialized
    """
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Services are not initialized"
        )
    return services


def get_header_session_id(x_session_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Session id from the X-Session-Id header, if present."""
    return x_session_id.strip() if x_session_id and x_session_id.strip() else None
