from fastapi import APIRouter
from fieldops.api.v2 import (
    tickets,
    notes,
    photos,
    projects,
    quickbooks,
    device,
)

api_router = APIRouter()

# Include all v2 routers
api_router.include_router(tickets.router, prefix="/tickets", tags=["tickets"])
api_router.include_router(notes.router, prefix="/tickets", tags=["notes"])
api_router.include_router(photos.router, prefix="/tickets", tags=["photos"])
api_router.include_router(projects.router, prefix="/projects", tags=["projects"])
api_router.include_router(quickbooks.router, prefix="/quickbooks", tags=["quickbooks"])
api_router.include_router(device.router, prefix="/device", tags=["device"])
