"""
Tests for team endpoints over HTTP.
"""

import pytest
from httpx import AsyncClient


async def _create_team(client, event_id, leader_headers, emails, max_size=None):
    body = {"event_id": event_id, "name": "Null Pointers", "member_emails": emails}
    if max_size is not None:
        body["max_size"] = max_size
    return await client.post("/api/v1/teams/", json=body, headers=leader_headers)


@pytest.mark.asyncio
async def test_team_lifecycle(client: AsyncClient, make_event, participants, headers_for):
    event = await make_event(registration_limit=10)
    leader, a, b = participants[:3]

    created = await _create_team(client, event.id, headers_for(leader), [a.email, b.email], max_size=3)
    assert created.status_code == 201
    team = created.json()
    assert team["status"] == "forming"
    assert team["leader_id"] == leader.id
    assert {m["email"] for m in team["members"]} == {a.email, b.email}

    for member in (a, b):
        responded = await client.post(
            f"/api/v1/teams/{team['id']}/respond", json={"action": "accept"}, headers=headers_for(member)
        )
        assert responded.status_code == 200
    assert responded.json()["status"] == "ready"

    registered = await client.post(f"/api/v1/teams/{team['id']}/register", headers=headers_for(leader))
    assert registered.status_code == 200
    data = registered.json()
    assert data["registrations_created"] == 3
    assert data["members_skipped"] == 0
    assert data["team"]["status"] == "registered"

    event_after = (await client.get(f"/api/v1/events/{event.id}")).json()
    assert event_after["registration_count"] == 3

    mine = await client.get("/api/v1/teams/mine", headers=headers_for(a))
    assert [t["id"] for t in mine.json()] == [team["id"]]


@pytest.mark.asyncio
async def test_register_before_ready(client: AsyncClient, make_event, participants, headers_for):
    event = await make_event(registration_limit=10)
    leader, a = participants[:2]
    team = (await _create_team(client, event.id, headers_for(leader), [a.email])).json()

    response = await client.post(f"/api/v1/teams/{team['id']}/register", headers=headers_for(leader))
    assert response.status_code == 400
    assert response.json()["error"]["reason"] == "TEAM_NOT_READY"


@pytest.mark.asyncio
async def test_team_short_of_capacity(client: AsyncClient, make_event, participants, headers_for):
    event = await make_event(registration_limit=2)
    leader, a, b = participants[:3]
    team = (await _create_team(client, event.id, headers_for(leader), [a.email, b.email])).json()
    for member in (a, b):
        await client.post(
            f"/api/v1/teams/{team['id']}/respond", json={"action": "accept"}, headers=headers_for(member)
        )

    response = await client.post(f"/api/v1/teams/{team['id']}/register", headers=headers_for(leader))
    assert response.status_code == 409
    error = response.json()["error"]
    assert error["reason"] == "CAPACITY_EXCEEDED"
    assert error["required"] == 3
    assert error["remaining"] == 2


@pytest.mark.asyncio
async def test_member_cannot_register_team(client: AsyncClient, make_event, participants, headers_for):
    event = await make_event(registration_limit=10)
    leader, a = participants[:2]
    team = (await _create_team(client, event.id, headers_for(leader), [a.email])).json()
    await client.post(f"/api/v1/teams/{team['id']}/respond", json={"action": "accept"}, headers=headers_for(a))

    response = await client.post(f"/api/v1/teams/{team['id']}/register", headers=headers_for(a))
    assert response.status_code == 403
    assert response.json()["error"]["reason"] == "NOT_TEAM_LEADER"


@pytest.mark.asyncio
async def test_respond_rejects_unknown_action(client: AsyncClient, make_event, participants, headers_for):
    event = await make_event(registration_limit=10)
    leader, a = participants[:2]
    team = (await _create_team(client, event.id, headers_for(leader), [a.email])).json()

    response = await client.post(
        f"/api/v1/teams/{team['id']}/respond", json={"action": "maybe"}, headers=headers_for(a)
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_outsider_cannot_view_team(client: AsyncClient, make_event, participants, headers_for):
    event = await make_event(registration_limit=10)
    leader, a, outsider = participants[:3]
    team = (await _create_team(client, event.id, headers_for(leader), [a.email])).json()

    assert (await client.get(f"/api/v1/teams/{team['id']}", headers=headers_for(a))).status_code == 200
    response = await client.get(f"/api/v1/teams/{team['id']}", headers=headers_for(outsider))
    assert response.status_code == 403
    assert response.json()["error"]["reason"] == "NOT_A_MEMBER"


@pytest.mark.asyncio
async def test_disband(client: AsyncClient, make_event, participants, headers_for):
    event = await make_event(registration_limit=10)
    leader, a = participants[:2]
    team = (await _create_team(client, event.id, headers_for(leader), [a.email])).json()

    response = await client.delete(f"/api/v1/teams/{team['id']}", headers=headers_for(leader))
    assert response.status_code == 204

    gone = await client.get(f"/api/v1/teams/{team['id']}", headers=headers_for(leader))
    assert gone.status_code == 404
    assert gone.json()["error"]["reason"] == "TEAM_NOT_FOUND"


@pytest.mark.asyncio
async def test_invite_and_remove_member(client: AsyncClient, make_event, participants, headers_for):
    event = await make_event(registration_limit=10)
    leader, a, b = participants[:3]
    team = (await _create_team(client, event.id, headers_for(leader), [a.email])).json()

    invited = await client.post(
        f"/api/v1/teams/{team['id']}/invite", json={"email": b.email}, headers=headers_for(leader)
    )
    assert invited.status_code == 200
    member_id = next(m["id"] for m in invited.json()["members"] if m["email"] == b.email)

    removed = await client.delete(
        f"/api/v1/teams/{team['id']}/members/{member_id}", headers=headers_for(leader)
    )
    assert removed.status_code == 200
    assert [m["email"] for m in removed.json()["members"]] == [a.email]
