"""
Service container.

Owns every store and service of one application instance. Built once at
startup and attached to ``app.state.services``; tests build their own
against a temporary database and in-memory blob/state storage.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fieldops.services.blob_store import BlobStore, create_blob_store
from fieldops.services.deletion_service import TicketDeletionService
from fieldops.services.mirror_store import MirrorStore, TicketMirror
from fieldops.services.persisted_store import (
    AuthStore,
    EquipmentStore,
    FileStateStorage,
    ProjectIdStore,
    SelectedDateStore,
    StateStorage,
    UserStore,
)
from fieldops.services.qbo_service import QuickBooksClient
from fieldops.services.subscriptions import Subscription, SubscriptionHub, bind_mirror
from fieldops.services.ticket_repository import NOTES, TICKETS, TicketRepository
from fieldops.services.ticket_service import TicketPhotoService, TicketService
from fieldops.services.upload_service import AssetFetcher, UploadPipeline

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: object
    hub: SubscriptionHub
    repository: TicketRepository
    blob_store: BlobStore
    tickets_mirror: TicketMirror
    notes_mirror: MirrorStore
    equipment: EquipmentStore
    auth: AuthStore
    project_id: ProjectIdStore
    selected_date: SelectedDateStore
    user: UserStore
    pipeline: UploadPipeline
    tickets: TicketService
    photos: TicketPhotoService
    deletion: TicketDeletionService
    quickbooks: QuickBooksClient
    http_client: httpx.AsyncClient
    subscriptions: List[Subscription] = field(default_factory=list)

    async def sync_mirrors(self) -> None:
        """Load the current snapshots into the mirrors."""
        await self.hub.notify(TICKETS)
        await self.hub.notify(NOTES)

    async def reset(self) -> None:
        """Back to initial state: mirrors, UI stores and persisted stores."""
        self.tickets_mirror.reset()
        self.notes_mirror.reset()
        self.selected_date.reset()
        self.user.reset()
        for store in (self.equipment, self.auth, self.project_id):
            store.reset()
        await self.sync_mirrors()

    async def aclose(self) -> None:
        self.hub.close_all()
        self.subscriptions.clear()
        await self.blob_store.close()
        await self.http_client.aclose()
        logger.info("Services closed")


def build_services(
    settings,
    session_factory: async_sessionmaker[AsyncSession],
    blob_store: Optional[BlobStore] = None,
    state_storage: Optional[StateStorage] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ServiceContainer:
    """Wire up every store and service for one application instance."""
    hub = SubscriptionHub()
    repository = TicketRepository(session_factory, hub=hub)
    blob_store = blob_store or create_blob_store(settings)
    state_storage = state_storage or FileStateStorage(settings.STATE_DIR)
    http_client = http_client or httpx.AsyncClient(timeout=30.0)

    tickets_mirror = TicketMirror()
    notes_mirror = MirrorStore("ticketNotes")
    subscriptions = [
        bind_mirror(hub, tickets_mirror, TICKETS, repository.list_ticket_documents),
        bind_mirror(hub, notes_mirror, NOTES, repository.list_note_documents),
    ]

    auth = AuthStore(state_storage, company_id=settings.QBO_COMPANY_ID)
    pipeline = UploadPipeline(blob_store, AssetFetcher(http_client))
    tickets = TicketService(repository, tickets_mirror, settings.DEFAULT_INSPECTOR_NAME)

    return ServiceContainer(
        settings=settings,
        hub=hub,
        repository=repository,
        blob_store=blob_store,
        tickets_mirror=tickets_mirror,
        notes_mirror=notes_mirror,
        equipment=EquipmentStore(state_storage),
        auth=auth,
        project_id=ProjectIdStore(state_storage),
        selected_date=SelectedDateStore(),
        user=UserStore(),
        pipeline=pipeline,
        tickets=tickets,
        photos=TicketPhotoService(tickets, pipeline, blob_store),
        deletion=TicketDeletionService(repository, blob_store, tickets_mirror),
        quickbooks=QuickBooksClient(auth, client=http_client, sandbox=settings.QBO_SANDBOX),
        http_client=http_client,
        subscriptions=subscriptions,
    )
