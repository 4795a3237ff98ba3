# Services module
from fieldops.services.container import ServiceContainer, build_services
from fieldops.services.deletion_service import DeletionReport, TicketDeletionService
from fieldops.services.mirror_store import MirrorStore, OptimisticSync, TicketMirror
from fieldops.services.upload_service import UploadPipeline

__all__ = [
    "ServiceContainer",
    "build_services",
    "DeletionReport",
    "TicketDeletionService",
    "MirrorStore",
    "OptimisticSync",
    "TicketMirror",
    "UploadPipeline",
]
