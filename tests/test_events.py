"""
Tests for event endpoints: creation, browsing, lifecycle and health.
"""

import pytest
from datetime import datetime, timezone, timedelta
from httpx import AsyncClient

from campusfest.models.enums import EventStatus, UserRole


def _future(days: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


@pytest.mark.asyncio
async def test_create_event(client: AsyncClient, organizer_headers):
    """Organizer creates a draft event with a custom form."""
    response = await client.post(
        "/api/v1/events/",
        json={
            "name": "Code Sprint",
            "description": "Two-day build",
            "start_date": _future(10),
            "end_date": _future(11),
            "registration_deadline": _future(9),
            "registration_limit": 50,
            "custom_form": [
                {"field_type": "dropdown", "label": "Track", "options": ["AI", "Web"], "required": True},
            ],
        },
        headers=organizer_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Code Sprint"
    assert data["status"] == "draft"
    assert data["registration_count"] == 0
    assert data["custom_form"][0]["options"] == ["AI", "Web"]
    assert data["form_locked"] is False


@pytest.mark.asyncio
async def test_create_merchandise_event(client: AsyncClient, organizer_headers):
    response = await client.post(
        "/api/v1/events/",
        json={
            "name": "Fest Store",
            "event_type": "merchandise",
            "publish_now": True,
            "purchase_limit_per_user": 2,
            "items": [
                {"name": "Hoodie", "size": "L", "color": "Black", "stock": 20, "price": "25.00"},
                {"name": "Hoodie", "size": "M", "color": "Black", "stock": 15, "price": "25.00"},
            ],
        },
        headers=organizer_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "published"
    assert [(i["size"], i["stock"]) for i in data["items"]] == [("L", 20), ("M", 15)]


@pytest.mark.asyncio
async def test_create_event_requires_organizer(client: AsyncClient, participants, headers_for):
    """Participants get a structured 403."""
    response = await client.post(
        "/api/v1/events/",
        json={"name": "Not Mine"},
        headers=headers_for(participants[0]),
    )
    assert response.status_code == 403
    error = response.json()["error"]
    assert error["category"] == "forbidden"
    assert error["reason"] == "ROLE_REQUIRED"
    assert error["required"] == ["organizer"]


@pytest.mark.asyncio
async def test_create_event_unauthenticated(client: AsyncClient):
    response = await client.post("/api/v1/events/", json={"name": "Anonymous"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_event_deadline_after_end(client: AsyncClient, organizer_headers):
    response = await client.post(
        "/api/v1/events/",
        json={
            "name": "Backwards",
            "start_date": _future(5),
            "end_date": _future(6),
            "registration_deadline": _future(7),
        },
        headers=organizer_headers,
    )
    assert response.status_code == 422
    assert response.json()["error"]["reason"] == "INVALID_EVENT"


@pytest.mark.asyncio
async def test_create_merchandise_event_without_items(client: AsyncClient, organizer_headers):
    response = await client.post(
        "/api/v1/events/",
        json={"name": "Empty Store", "event_type": "merchandise"},
        headers=organizer_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_events_shows_open_events_only(client: AsyncClient, make_event):
    await make_event(name="Open Mic")
    await make_event(name="Secret Draft", status=EventStatus.DRAFT.value)
    await make_event(name="Old Show", status=EventStatus.COMPLETED.value)

    response = await client.get("/api/v1/events/")
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert [e["name"] for e in data["events"]] == ["Open Mic"]


@pytest.mark.asyncio
async def test_list_events_filters(client: AsyncClient, make_event, merch_event):
    await make_event(name="Open Mic")

    by_type = await client.get("/api/v1/events/?event_type=merchandise")
    assert [e["name"] for e in by_type.json()["events"]] == ["Fest Merch"]

    by_name = await client.get("/api/v1/events/?search=mic")
    assert [e["name"] for e in by_name.json()["events"]] == ["Open Mic"]


@pytest.mark.asyncio
async def test_list_events_drops_events_that_just_ended(client: AsyncClient, make_event):
    now = datetime.now(timezone.utc)
    await make_event(name="Yesterday", start_date=now - timedelta(days=2), end_date=now - timedelta(days=1))

    response = await client.get("/api/v1/events/")
    assert response.json() == {"events": [], "total": 0}


@pytest.mark.asyncio
async def test_get_event_reconciles_status(client: AsyncClient, make_event):
    now = datetime.now(timezone.utc)
    event = await make_event(start_date=now - timedelta(hours=1), end_date=now + timedelta(hours=4))

    response = await client.get(f"/api/v1/events/{event.id}")
    assert response.status_code == 200
    assert response.json()["status"] == "ongoing"


@pytest.mark.asyncio
async def test_get_event_not_found(client: AsyncClient):
    response = await client.get("/api/v1/events/99999")
    assert response.status_code == 404
    assert response.json()["error"] == {
        "category": "not_found",
        "reason": "EVENT_NOT_FOUND",
        "message": "Event 99999 not found",
    }


@pytest.mark.asyncio
async def test_organizer_publishes_and_closes(client: AsyncClient, make_event, organizer_headers):
    event = await make_event(status=EventStatus.DRAFT.value)

    published = await client.patch(
        f"/api/v1/events/{event.id}/status", json={"status": "published"}, headers=organizer_headers
    )
    assert published.status_code == 200
    assert published.json()["status"] == "published"

    closed = await client.patch(
        f"/api/v1/events/{event.id}/status", json={"status": "closed"}, headers=organizer_headers
    )
    assert closed.json()["status"] == "closed"

    reopened = await client.patch(
        f"/api/v1/events/{event.id}/status", json={"status": "published"}, headers=organizer_headers
    )
    assert reopened.status_code == 400
    error = reopened.json()["error"]
    assert error["reason"] == "INVALID_STATUS_TRANSITION"
    assert error["allowed"] == []


@pytest.mark.asyncio
async def test_other_organizer_cannot_change_status(client: AsyncClient, make_event, make_user, headers_for):
    event = await make_event(status=EventStatus.DRAFT.value)
    rival = await make_user("rival@fest.edu", role=UserRole.ORGANIZER)

    response = await client.patch(
        f"/api/v1/events/{event.id}/status", json={"status": "published"}, headers=headers_for(rival)
    )
    assert response.status_code == 403
    assert response.json()["error"]["reason"] == "NOT_EVENT_ORGANIZER"


@pytest.mark.asyncio
async def test_health_and_request_id(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "abc123"})
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] == {"status": "ok"}
    assert data["redis"] == {"status": "disabled"}
    assert response.headers["X-Request-ID"] == "abc123"


@pytest.mark.asyncio
async def test_metrics_endpoint(client: AsyncClient):
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "admission_attempts_total" in response.text
