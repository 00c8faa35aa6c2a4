"""
Tests for bearer token verification and role gates.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from campusfest.core.security import create_access_token
from campusfest.models.enums import UserRole


@pytest.mark.asyncio
async def test_missing_token(client: AsyncClient):
    response = await client.get("/api/v1/registrations/")
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_garbage_token(client: AsyncClient):
    response = await client.get(
        "/api/v1/registrations/", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_expired_token(client: AsyncClient, participants):
    token = create_access_token(
        {"sub": str(participants[0].id), "role": "participant"},
        expires_delta=timedelta(minutes=-5),
    )
    response = await client.get(
        "/api/v1/registrations/", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_for_unknown_user(client: AsyncClient):
    token = create_access_token({"sub": "424242", "role": "participant"})
    response = await client.get(
        "/api/v1/registrations/", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_without_subject(client: AsyncClient):
    token = create_access_token({"role": "participant"})
    response = await client.get(
        "/api/v1/registrations/", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_valid_token(client: AsyncClient, participants, headers_for):
    response = await client.get("/api/v1/registrations/", headers=headers_for(participants[0]))
    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
async def test_organizer_cannot_register(client: AsyncClient, small_event, organizer_headers):
    """Registration is a participant action."""
    response = await client.post(f"/api/v1/events/{small_event.id}/register", headers=organizer_headers)
    assert response.status_code == 403
    error = response.json()["error"]
    assert error["reason"] == "ROLE_REQUIRED"
    assert error["required"] == ["participant"]


@pytest.mark.asyncio
async def test_role_comes_from_database_not_token(client: AsyncClient, participants):
    """A participant cannot claim the organizer role in the token."""
    token = create_access_token({"sub": str(participants[0].id), "role": "organizer"})
    response = await client.post(
        "/api/v1/events/",
        json={"name": "Sneaky"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_passes_every_gate(client: AsyncClient, make_user, headers_for):
    admin = await make_user("admin@fest.edu", role=UserRole.ADMIN)

    response = await client.post(
        "/api/v1/events/",
        json={"name": "Staff Meetup"},
        headers=headers_for(admin),
    )
    assert response.status_code == 201
    assert response.json()["organizer_id"] == admin.id
