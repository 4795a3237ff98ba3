"""
Tests for ticket creation, optimistic updates, photos and reports.
"""

import pytest

from fieldops.exceptions import NotFoundError, ValidationError
from fieldops.schemas.ticket import RemediationData, TicketStatusUpdate
from fieldops.services.ticket_repository import LEGACY_PROJECTS
from fieldops.services.ticket_service import compose_address, format_phone_number
from fieldops.services.upload_service import FilenameStrategy, LocalAsset, MediaPermissionError, UploadBatchError
from tests.factories import AssetFactory, ProjectCreateFactory, RemediationFactory, TicketCreateFactory


class TestHelpers:
    def test_format_phone_number(self):
        assert format_phone_number("918-555-0142") == "(918) 555-0142"
        assert format_phone_number("9185550142") == "(918) 555-0142"

    def test_format_phone_number_other_lengths(self):
        assert format_phone_number("555-0142") == "5550142"
        assert format_phone_number(None) == ""

    def test_compose_address(self):
        assert compose_address("12 Oak Ave", "", "Tulsa", "OK", "74103") == "12 Oak Ave, Tulsa, OK 74103"
        assert compose_address("12 Oak Ave", "4B", "Tulsa", "OK", "74103") == "12 Oak Ave Apt 4B, Tulsa, OK 74103"


class TestTicketService:
    """Tests for TicketService."""

    @pytest.mark.asyncio
    async def test_create_from_template(self, services):
        payload = TicketCreateFactory(customerNumber="9185550142", apt="4B")

        ticket = await services.tickets.create_ticket(payload)

        assert ticket.contact_number == "(918) 555-0142"
        assert ticket.address.startswith(f"{payload['street']} Apt 4B, ")
        assert ticket.hours == "2"
        assert ticket.job_type == "inspection"
        assert ticket.on_site is False
        assert ticket.inspector_name == "Test Inspector"
        assert ticket.id in services.tickets_mirror

    @pytest.mark.asyncio
    async def test_create_requires_address_and_customer(self, services):
        with pytest.raises(ValidationError) as exc_info:
            await services.tickets.create_ticket(TicketCreateFactory(city="", customer=" "))

        fields = [e["field"] for e in exc_info.value.errors]
        assert fields == ["city", "customer"]
        assert await services.repository.list_tickets() == []

    @pytest.mark.asyncio
    async def test_create_with_first_note(self, services):
        ticket = await services.tickets.create_ticket(
            TicketCreateFactory(note="Back gate is locked"),
            user={"uid": "u1", "displayName": "Dana"},
        )

        notes = await services.tickets.list_notes(ticket.id)
        assert [(n.message, n.user_name) for n in notes] == [("Back gate is locked", "Dana")]
        assert ticket.message_count == 1

    @pytest.mark.asyncio
    async def test_create_project_is_a_tagged_ticket(self, services):
        ticket = await services.tickets.create_project(ProjectCreateFactory())

        assert ticket.source_collection == LEGACY_PROJECTS
        assert ticket.project_id == ticket.id
        assert ticket.type_of_job == "remediation"

    @pytest.mark.asyncio
    async def test_set_status_updates_mirror(self, services):
        ticket = await services.tickets.create_ticket(TicketCreateFactory())

        updated = await services.tickets.set_status(
            ticket.id, TicketStatusUpdate(on_site=True, equipment_on_site=True)
        )

        assert updated.on_site and updated.equipment_on_site
        assert updated.site_complete is False
        mirrored = services.tickets_mirror.get(ticket.id)
        assert mirrored["onSite"] is True and mirrored["equipmentOnSite"] is True

    @pytest.mark.asyncio
    async def test_failed_write_rolls_back_mirror(self, services, monkeypatch):
        ticket = await services.tickets.create_ticket(TicketCreateFactory())
        before = dict(services.tickets_mirror.get(ticket.id))

        async def offline(*args, **kwargs):
            raise ConnectionError("offline")

        monkeypatch.setattr(services.repository, "update_ticket", offline)

        with pytest.raises(ConnectionError):
            await services.tickets.update_fields(ticket.id, {"siteComplete": True})
        assert services.tickets_mirror.get(ticket.id) == before

    @pytest.mark.asyncio
    async def test_update_missing_ticket(self, services):
        with pytest.raises(NotFoundError):
            await services.tickets.update_fields("missing", {"onSite": True})

    @pytest.mark.asyncio
    async def test_save_remediation(self, services):
        ticket = await services.tickets.create_ticket(TicketCreateFactory())
        remediation = RemediationData.model_validate(RemediationFactory())

        updated = await services.tickets.save_remediation(ticket.id, remediation)

        assert len(updated.remediation_data.rooms) == 2
        assert services.tickets_mirror.get(ticket.id)["remediationData"]["rooms"][0]["name"]

    @pytest.mark.asyncio
    async def test_failed_remediation_write_rolls_back_mirror(self, services, monkeypatch):
        ticket = await services.tickets.create_ticket(TicketCreateFactory())
        before = dict(services.tickets_mirror.get(ticket.id))

        async def offline(*args, **kwargs):
            raise ConnectionError("offline")

        monkeypatch.setattr(services.repository, "replace_remediation", offline)

        with pytest.raises(ConnectionError):
            await services.tickets.save_remediation(ticket.id, RemediationData.model_validate(RemediationFactory()))
        assert services.tickets_mirror.get(ticket.id) == before

    @pytest.mark.asyncio
    async def test_save_remediation_on_missing_ticket(self, services):
        with pytest.raises(NotFoundError):
            await services.tickets.save_remediation("missing", RemediationData())


    @pytest.mark.asyncio
    async def test_add_note_to_missing_ticket(self, services):
        from fieldops.schemas.note import NoteCreate

        with pytest.raises(NotFoundError):
            await services.tickets.add_note("missing", NoteCreate(message="hi"))


class TestTicketPhotoService:
    """Tests for photo attachment and reports."""

    @pytest.mark.asyncio
    async def test_attach_photos_to_ticket(self, services, blob_store):
        ticket = await services.tickets.create_ticket(TicketCreateFactory())
        assets = [LocalAsset.from_mapping(a) for a in AssetFactory.create_batch(2)]

        updated = await services.photos.attach_photos(ticket.id, assets, permission="granted")

        paths = [p.storage_path for p in updated.photos]
        assert len(set(paths)) == 2
        assert all(path.startswith(f"ticketPhotos/{ticket.id}/") for path in paths)
        assert all(p.download_url for p in updated.photos)
        assert sorted(blob_store.objects) == sorted(paths)

    @pytest.mark.asyncio
    async def test_same_filename_on_two_tickets(self, services, blob_store):
        first = await services.tickets.create_ticket(TicketCreateFactory())
        second = await services.tickets.create_ticket(TicketCreateFactory())
        asset = LocalAsset.from_mapping(AssetFactory(fileName="IMG_0001.jpg"))

        a = await services.photos.attach_photos(first.id, [asset], permission="granted")
        b = await services.photos.attach_photos(second.id, [asset], permission="granted")
        await services.deletion.delete_ticket(first.id)

        kept = b.photos[0].storage_path
        assert a.photos[0].storage_path != kept
        assert kept in blob_store.objects
        assert (await services.tickets.get_ticket(second.id)).photos[0].storage_path == kept

    @pytest.mark.asyncio
    async def test_same_filename_twice_in_one_batch(self, services, blob_store):
        ticket = await services.tickets.create_ticket(TicketCreateFactory())
        assets = [LocalAsset.from_mapping(AssetFactory(fileName="IMG_0001.jpg")) for _ in range(2)]

        updated = await services.photos.attach_photos(
            ticket.id, assets, permission="granted", strategy=FilenameStrategy.TIMESTAMP
        )

        paths = [p.storage_path for p in updated.photos]
        assert len(set(paths)) == 2
        assert all(path in blob_store.objects for path in paths)

    @pytest.mark.asyncio
    async def test_attach_photos_to_room(self, services):
        ticket = await services.tickets.create_ticket(TicketCreateFactory())
        await services.tickets.save_remediation(
            ticket.id,
            RemediationData.model_validate({"rooms": [{"name": "Kitchen"}, {"name": "Basement"}]}),
        )
        asset = LocalAsset.from_mapping(AssetFactory(fileName="wall.jpg"))

        updated = await services.photos.attach_photos(ticket.id, [asset], permission="granted", room="Basement")

        rooms = {r.name: r for r in updated.remediation_data.rooms}
        [photo] = rooms["Basement"].photos
        assert photo.storage_path.startswith(f"remediationPhotos/{ticket.id}/")
        assert rooms["Kitchen"].photos == []
        assert updated.photos == []

    @pytest.mark.asyncio
    async def test_attach_requires_permission(self, services, blob_store):
        ticket = await services.tickets.create_ticket(TicketCreateFactory())
        asset = LocalAsset.from_mapping(AssetFactory())

        with pytest.raises(MediaPermissionError):
            await services.photos.attach_photos(ticket.id, [asset], permission="denied")
        assert blob_store.uploads == []

    @pytest.mark.asyncio
    async def test_unknown_room(self, services, blob_store):
        ticket = await services.tickets.create_ticket(TicketCreateFactory())
        asset = LocalAsset.from_mapping(AssetFactory())

        with pytest.raises(NotFoundError):
            await services.photos.attach_photos(ticket.id, [asset], permission="granted", room="Attic")
        assert blob_store.uploads == []

    @pytest.mark.asyncio
    async def test_failed_batch_attaches_nothing(self, services, blob_store):
        ticket = await services.tickets.create_ticket(TicketCreateFactory())
        good = LocalAsset.from_mapping(AssetFactory(fileName="good.jpg"))
        bad = LocalAsset.from_mapping(AssetFactory(fileName="bad.jpg"))
        blob_store.fail_uploads.add(f"ticketPhotos/{ticket.id}/*_bad.jpg")

        with pytest.raises(UploadBatchError):
            await services.photos.attach_photos(
                ticket.id, [good, bad], permission="granted", strategy=FilenameStrategy.TIMESTAMP
            )

        assert (await services.tickets.get_ticket(ticket.id)).photos == []
        assert blob_store.objects == {}

    @pytest.mark.asyncio
    async def test_detach_photo(self, services, blob_store):
        ticket = await services.tickets.create_ticket(TicketCreateFactory())
        assets = [LocalAsset.from_mapping(AssetFactory(fileName=n)) for n in ("a.jpg", "b.jpg")]
        attached = await services.photos.attach_photos(ticket.id, assets, permission="granted")
        first, second = [p.storage_path for p in attached.photos]

        updated = await services.photos.detach_photo(ticket.id, first)

        assert [p.storage_path for p in updated.photos] == [second]
        assert first not in blob_store.objects
        assert second in blob_store.objects

    @pytest.mark.asyncio
    async def test_detach_unknown_photo(self, services):
        ticket = await services.tickets.create_ticket(TicketCreateFactory())
        with pytest.raises(NotFoundError):
            await services.photos.detach_photo(ticket.id, "ticketPhotos/none.jpg")

    @pytest.mark.asyncio
    async def test_attach_report(self, services, blob_store):
        ticket = await services.tickets.create_ticket(TicketCreateFactory(street="12 Oak Ave"))

        updated = await services.photos.attach_report(ticket.id, b"%PDF-1.4")

        assert "reports/12_Oak_Ave.pdf" in blob_store.objects
        assert updated.pdf_url == blob_store.download_url("reports/12_Oak_Ave.pdf")

    @pytest.mark.asyncio
    async def test_attach_inspection_report(self, services, blob_store):
        ticket = await services.tickets.create_ticket(TicketCreateFactory(street="12 Oak Ave"))

        updated = await services.photos.attach_report(ticket.id, b"%PDF-1.4", kind="inspection")

        assert updated.pdf_download_url is not None
        assert any(p.startswith("inspection_reports/12_Oak_Ave") for p in blob_store.objects)
