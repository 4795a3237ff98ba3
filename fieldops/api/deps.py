"""
FastAPI Dependencies

Every route reaches stores and services through the ``ServiceContainer``
attached to the application at startup.
"""

from typing import Annotated

from fastapi import Depends, Request

from fieldops.services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    """Services of the running application."""
    return request.app.state.services


Services = Annotated[ServiceContainer, Depends(get_services)]
