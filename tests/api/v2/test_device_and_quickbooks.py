"""
Tests for the device state and QuickBooks API endpoints.
"""
import json

import httpx
import pytest
import pytest_asyncio

from fieldops.services.qbo_service import QuickBooksClient
from tests.factories import RemediationFactory

API = "/api/v2"


@pytest_asyncio.fixture
async def qbo_requests(services):
    """Route QuickBooks calls through a mock transport; yields the captured requests."""
    seen = []

    def handler(request):
        seen.append(request)
        if request.url.path.endswith("/send"):
            return httpx.Response(200, json={"Invoice": {"Id": "501", "EmailStatus": "EmailSent"}})
        return httpx.Response(200, json={"Invoice": {"Id": "501", "TotalAmt": 0}})

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    services.quickbooks = QuickBooksClient(services.auth, client=http, sandbox=True)
    yield seen
    await http.aclose()


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_correlation_id_echoed(self, client):
        response = await client.get("/health", headers={"X-Correlation-ID": "abc-123"})
        assert response.headers["X-Correlation-ID"] == "abc-123"


class TestDeviceEndpoints:
    @pytest.mark.asyncio
    async def test_equipment_defaults(self, client):
        response = await client.get(f"{API}/device/equipment")

        assert response.json()["equipment"]["airMover"] == 0
        assert response.json()["equipmentOnSite"] is False

    @pytest.mark.asyncio
    async def test_update_equipment_persists(self, client, state_storage):
        response = await client.patch(
            f"{API}/device/equipment",
            json={"counts": {"airMover": 4, "ozone": 1}, "equipmentOnSite": True},
        )

        assert response.json()["equipment"]["airMover"] == 4
        assert response.json()["equipmentOnSite"] is True
        assert json.loads(state_storage.values["equipment"])["equipment"]["ozone"] == 1

    @pytest.mark.asyncio
    async def test_rejects_unknown_or_negative_counts(self, client):
        unknown = await client.patch(f"{API}/device/equipment", json={"counts": {"fogger": 1}})
        negative = await client.patch(f"{API}/device/equipment", json={"counts": {"airMover": -1}})

        assert unknown.status_code == 422
        assert negative.status_code == 422

    @pytest.mark.asyncio
    async def test_select_project(self, client, ticket_data):
        ticket = (await client.post(f"{API}/tickets", json=ticket_data)).json()

        response = await client.put(f"{API}/device/project", json={"projectId": ticket["id"]})
        assert response.json() == {"projectId": ticket["id"]}
        assert (await client.get(f"{API}/device/project")).json() == {"projectId": ticket["id"]}

        cleared = await client.put(f"{API}/device/project", json={"projectId": None})
        assert cleared.json() == {"projectId": None}

    @pytest.mark.asyncio
    async def test_select_unknown_project(self, client):
        response = await client.put(f"{API}/device/project", json={"projectId": "nope"})
        assert response.status_code == 404


class TestQuickBooksEndpoints:
    @pytest.mark.asyncio
    async def test_credentials_lifecycle(self, client):
        status = await client.get(f"{API}/quickbooks/status")
        assert status.json()["connected"] is False
        assert status.json()["company_id"] == "9130350000000000"

        stored = await client.put(
            f"{API}/quickbooks/credentials",
            json={"accessToken": "tok", "refreshToken": "ref"},
        )
        assert stored.json()["connected"] is True

        cleared = await client.delete(f"{API}/quickbooks/credentials")
        assert cleared.json()["connected"] is False
        assert cleared.json()["company_id"] == "9130350000000000"

    @pytest.mark.asyncio
    async def test_invoice_without_credentials(self, client, qbo_requests):
        response = await client.post(
            f"{API}/quickbooks/invoices",
            json={"line_items": [{"description": "Drywall", "amount": 10}]},
        )

        assert response.status_code == 400
        assert qbo_requests == []

    @pytest.mark.asyncio
    async def test_invoice_from_ticket_remediation(self, client, services, ticket_data, qbo_requests):
        services.auth.set_credentials(accessToken="tok")
        ticket = (await client.post(f"{API}/tickets", json=ticket_data)).json()
        await client.put(f"{API}/tickets/{ticket['id']}/remediation", json=RemediationFactory())

        response = await client.post(
            f"{API}/quickbooks/invoices",
            json={"ticket_id": ticket["id"], "unit_price": 2.5, "send": True},
        )

        assert response.status_code == 201
        assert response.json() == {"invoice": {"Id": "501", "TotalAmt": 0}, "sent": True}
        payload = json.loads(qbo_requests[0].content)
        assert len(payload["Line"]) == 4
        assert payload["BillEmail"] == {"Address": ticket_data["customerEmail"]}
        assert qbo_requests[1].url.params["sendTo"] == ticket_data["customerEmail"]

    @pytest.mark.asyncio
    async def test_invoice_for_ticket_without_measurements(self, client, services, ticket_data, qbo_requests):
        services.auth.set_credentials(accessToken="tok")
        ticket = (await client.post(f"{API}/tickets", json=ticket_data)).json()

        response = await client.post(f"{API}/quickbooks/invoices", json={"ticket_id": ticket["id"]})

        assert response.status_code == 400
        assert qbo_requests == []
