"""
Tests for the participant-facing registration flow over HTTP:
register, waitlist, purchase, cancel, organizer decisions and attendance.
"""

import pytest
from httpx import AsyncClient

from campusfest.services.notifier import NotificationKind


@pytest.mark.asyncio
async def test_register_issues_ticket(client: AsyncClient, small_event, participants, headers_for, notifier):
    response = await client.post(
        f"/api/v1/events/{small_event.id}/register", headers=headers_for(participants[0])
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "registered"
    assert data["payment_status"] == "paid"  # free event
    assert data["ticket_id"].startswith("TKT-")
    assert data["qr_code"].startswith("data:image/png;base64,")

    event = (await client.get(f"/api/v1/events/{small_event.id}")).json()
    assert event["registration_count"] == 1
    assert [n.kind for n in notifier.sent] == [NotificationKind.TICKET_ISSUED]


@pytest.mark.asyncio
async def test_register_with_form_answers(client: AsyncClient, make_event, participants, headers_for):
    event = await make_event(
        custom_form=[{"field_type": "text", "label": "College", "required": True}],
    )

    missing = await client.post(
        f"/api/v1/events/{event.id}/register", json={}, headers=headers_for(participants[0])
    )
    assert missing.status_code == 422
    assert missing.json()["error"]["fields"] == {"College": "this field is required"}

    ok = await client.post(
        f"/api/v1/events/{event.id}/register",
        json={"form_responses": {"College": "NIT"}},
        headers=headers_for(participants[0]),
    )
    assert ok.status_code == 201
    assert ok.json()["form_responses"] == {"College": "NIT"}


@pytest.mark.asyncio
async def test_duplicate_registration_returns_409(client: AsyncClient, small_event, participants, headers_for):
    headers = headers_for(participants[0])
    first = await client.post(f"/api/v1/events/{small_event.id}/register", headers=headers)
    assert first.status_code == 201

    second = await client.post(f"/api/v1/events/{small_event.id}/register", headers=headers)
    assert second.status_code == 409
    error = second.json()["error"]
    assert error["category"] == "conflict"
    assert error["reason"] == "ALREADY_REGISTERED"
    assert error["registration_id"] == first.json()["id"]


@pytest.mark.asyncio
async def test_full_event_points_to_waitlist(client: AsyncClient, small_event, participants, headers_for):
    for user in participants[:2]:
        await client.post(f"/api/v1/events/{small_event.id}/register", headers=headers_for(user))

    late = headers_for(participants[2])
    response = await client.post(f"/api/v1/events/{small_event.id}/register", headers=late)
    assert response.status_code == 409
    error = response.json()["error"]
    assert error["reason"] == "CAPACITY_EXCEEDED"
    assert error["waitlist_available"] is True

    joined = await client.post(f"/api/v1/events/{small_event.id}/waitlist", headers=late)
    assert joined.status_code == 201
    assert joined.json()["position"] == 1

    status = await client.get(f"/api/v1/events/{small_event.id}/my-status", headers=late)
    assert status.json() == {
        "registered": False,
        "registration": None,
        "waitlisted": True,
        "waitlist_position": 1,
    }


@pytest.mark.asyncio
async def test_cancel_frees_slot_and_notifies_waitlist(
    client: AsyncClient, small_event, participants, headers_for, notifier
):
    user1, user2, user3 = participants[:3]
    reg1 = await client.post(f"/api/v1/events/{small_event.id}/register", headers=headers_for(user1))
    await client.post(f"/api/v1/events/{small_event.id}/register", headers=headers_for(user2))
    await client.post(f"/api/v1/events/{small_event.id}/waitlist", headers=headers_for(user3))

    cancel = await client.post(
        f"/api/v1/registrations/{reg1.json()['id']}/cancel", headers=headers_for(user1)
    )
    assert cancel.status_code == 200
    assert cancel.json()["status"] == "cancelled"

    slot = notifier.of_kind(NotificationKind.WAITLIST_SLOT_AVAILABLE)
    assert [n.email for n in slot] == [user3.email]

    again = await client.post(
        f"/api/v1/registrations/{reg1.json()['id']}/cancel", headers=headers_for(user1)
    )
    assert again.status_code == 200
    assert again.json()["status"] == "cancelled"

    registered = await client.post(f"/api/v1/events/{small_event.id}/register", headers=headers_for(user3))
    assert registered.status_code == 201


@pytest.mark.asyncio
async def test_my_registrations(client: AsyncClient, small_event, merch_event, participants, headers_for):
    headers = headers_for(participants[0])
    await client.post(f"/api/v1/events/{small_event.id}/register", headers=headers)
    await client.post(
        f"/api/v1/events/{merch_event.id}/purchase",
        json={"item_name": "Mug", "quantity": 1},
        headers=headers,
    )

    response = await client.get("/api/v1/registrations/", headers=headers)
    assert response.status_code == 200
    assert {r["event_id"] for r in response.json()} == {small_event.id, merch_event.id}


@pytest.mark.asyncio
async def test_purchase_and_approve(client: AsyncClient, merch_event, participants, headers_for, organizer_headers):
    buyer = headers_for(participants[0])
    order = await client.post(
        f"/api/v1/events/{merch_event.id}/purchase",
        json={"item_name": "Hoodie", "size": "L", "color": "Black"},
        headers=buyer,
    )
    assert order.status_code == 201
    data = order.json()
    assert data["status"] == "pending_approval"
    assert data["selections"][0]["size"] == "L"

    approved = await client.post(f"/api/v1/registrations/{data['id']}/approve", headers=organizer_headers)
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"

    participant_cancel = await client.post(f"/api/v1/registrations/{data['id']}/cancel", headers=buyer)
    assert participant_cancel.status_code == 400
    assert participant_cancel.json()["error"]["reason"] == "CANCELLATION_NOT_ALLOWED"


@pytest.mark.asyncio
async def test_reject_order_restores_stock(
    client: AsyncClient, merch_event, participants, headers_for, organizer_headers
):
    order = await client.post(
        f"/api/v1/events/{merch_event.id}/purchase",
        json={"item_name": "Hoodie", "size": "L", "color": "Black"},
        headers=headers_for(participants[0]),
    )

    rejected = await client.post(f"/api/v1/registrations/{order.json()['id']}/reject", headers=organizer_headers)
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "rejected"

    event = (await client.get(f"/api/v1/events/{merch_event.id}")).json()
    hoodie = next(i for i in event["items"] if i["size"] == "L")
    assert hoodie["stock"] == 2


@pytest.mark.asyncio
async def test_purchase_unknown_variant(client: AsyncClient, merch_event, participants, headers_for):
    response = await client.post(
        f"/api/v1/events/{merch_event.id}/purchase",
        json={"item_name": "Hoodie", "size": "XXL"},
        headers=headers_for(participants[0]),
    )
    assert response.status_code == 404
    assert response.json()["error"]["reason"] == "ITEM_NOT_FOUND"


@pytest.mark.asyncio
async def test_purchase_rejects_non_positive_quantity(client: AsyncClient, merch_event, participants, headers_for):
    response = await client.post(
        f"/api/v1/events/{merch_event.id}/purchase",
        json={"item_name": "Mug", "quantity": 0},
        headers=headers_for(participants[0]),
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_organizer_rejects_standard_registration(
    client: AsyncClient, small_event, participants, headers_for, organizer_headers
):
    reg = await client.post(f"/api/v1/events/{small_event.id}/register", headers=headers_for(participants[0]))

    rejected = await client.post(f"/api/v1/registrations/{reg.json()['id']}/reject", headers=organizer_headers)
    assert rejected.status_code == 200
    assert rejected.json()["message"] == "Registration rejected"

    event = (await client.get(f"/api/v1/events/{small_event.id}")).json()
    assert event["registration_count"] == 0


@pytest.mark.asyncio
async def test_attendance_scans_once(client: AsyncClient, small_event, participants, headers_for, organizer_headers):
    reg = await client.post(f"/api/v1/events/{small_event.id}/register", headers=headers_for(participants[0]))
    ticket_id = reg.json()["ticket_id"]

    first = await client.post("/api/v1/attendance/mark", json={"ticket_id": ticket_id}, headers=organizer_headers)
    assert first.status_code == 200
    assert first.json()["participant_email"] == participants[0].email

    second = await client.post("/api/v1/attendance/mark", json={"ticket_id": ticket_id}, headers=organizer_headers)
    assert second.status_code == 400
    assert second.json()["error"]["reason"] == "ALREADY_ATTENDED"

    unknown = await client.post("/api/v1/attendance/mark", json={"ticket_id": "TKT-NOPE"}, headers=organizer_headers)
    assert unknown.status_code == 404
    assert unknown.json()["error"]["reason"] == "TICKET_NOT_FOUND"


@pytest.mark.asyncio
async def test_cancelled_ticket_cannot_be_scanned(
    client: AsyncClient, small_event, participants, headers_for, organizer_headers
):
    headers = headers_for(participants[0])
    reg = await client.post(f"/api/v1/events/{small_event.id}/register", headers=headers)
    await client.post(f"/api/v1/registrations/{reg.json()['id']}/cancel", headers=headers)

    response = await client.post(
        "/api/v1/attendance/mark", json={"ticket_id": reg.json()["ticket_id"]}, headers=organizer_headers
    )
    assert response.status_code == 400
    assert response.json()["error"]["reason"] == "INVALID_STATUS_TRANSITION"


@pytest.mark.asyncio
async def test_standard_event_analytics(
    client: AsyncClient, small_event, participants, headers_for, organizer_headers
):
    regs = [
        (await client.post(f"/api/v1/events/{small_event.id}/register", headers=headers_for(u))).json()
        for u in participants[:2]
    ]
    await client.post(f"/api/v1/events/{small_event.id}/waitlist", headers=headers_for(participants[2]))
    await client.post("/api/v1/attendance/mark", json={"ticket_id": regs[0]["ticket_id"]}, headers=organizer_headers)

    response = await client.get(f"/api/v1/events/{small_event.id}/analytics", headers=organizer_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["registrations"] == 2
    assert data["attendance"] == 1
    assert data["attendance_rate"] == 0.5
    assert data["waitlist_length"] == 1
    assert data["item_sales"] == []


@pytest.mark.asyncio
async def test_merchandise_analytics(
    client: AsyncClient, merch_event, participants, headers_for, organizer_headers
):
    order = await client.post(
        f"/api/v1/events/{merch_event.id}/purchase",
        json={"item_name": "Hoodie", "size": "L", "color": "Black"},
        headers=headers_for(participants[0]),
    )
    await client.post(f"/api/v1/registrations/{order.json()['id']}/approve", headers=organizer_headers)
    await client.post(
        f"/api/v1/events/{merch_event.id}/purchase",
        json={"item_name": "Mug"},
        headers=headers_for(participants[1]),
    )

    data = (await client.get(f"/api/v1/events/{merch_event.id}/analytics", headers=organizer_headers)).json()
    assert data["revenue"] == 25.0  # only the approved order is paid
    sales = {(s["name"], s["size"]): (s["quantity_sold"], s["stock_remaining"]) for s in data["item_sales"]}
    assert sales[("Hoodie", "L")] == (1, 1)
    assert sales[("Mug", "")] == (1, 9)


@pytest.mark.asyncio
async def test_analytics_organizer_only(client: AsyncClient, small_event, participants, headers_for):
    response = await client.get(
        f"/api/v1/events/{small_event.id}/analytics", headers=headers_for(participants[0])
    )
    assert response.status_code == 403
