"""
Tests for reservation endpoints and their error responses.
"""

import asyncio

import pytest
from httpx import AsyncClient

from conftest import headers_for


@pytest.mark.asyncio
async def test_reserve_spot(client: AsyncClient, make_event, alice, ledger_state):
    event = await make_event(max_capacity=10)

    response = await client.post(f"/api/v1/reservations/events/{event.id}", headers=headers_for(alice))
    assert response.status_code == 201
    data = response.json()
    assert data["event_id"] == event.id
    assert data["user_id"] == alice.id
    assert data["status"] == "confirmed"
    assert await ledger_state(event.id) == (10, 9, 1)


@pytest.mark.asyncio
async def test_reserve_unauthenticated(client: AsyncClient, make_event):
    event = await make_event(max_capacity=10)

    response = await client.post(f"/api/v1/reservations/events/{event.id}")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_reserve_twice_conflicts(client: AsyncClient, make_event, alice):
    event = await make_event(max_capacity=10)
    url = f"/api/v1/reservations/events/{event.id}"

    await client.post(url, headers=headers_for(alice))
    response = await client.post(url, headers=headers_for(alice))
    assert response.status_code == 409
    assert response.json() == {
        "error": "AlreadyReserved",
        "detail": "You already have a reservation for this event",
    }


@pytest.mark.asyncio
async def test_reserve_full_event(client: AsyncClient, make_event, alice):
    event = await make_event(max_capacity=3, available_spots=0)

    response = await client.post(f"/api/v1/reservations/events/{event.id}", headers=headers_for(alice))
    assert response.status_code == 400
    assert response.json()["error"] == "NoCapacity"


@pytest.mark.asyncio
async def test_reserve_missing_event(client: AsyncClient, alice):
    response = await client.post("/api/v1/reservations/events/99999", headers=headers_for(alice))
    assert response.status_code == 404
    assert response.json()["error"] == "EventNotFound"


@pytest.mark.asyncio
async def test_reserve_past_event(client: AsyncClient, make_event, alice):
    event = await make_event(max_capacity=3, days_ahead=-1)

    response = await client.post(f"/api/v1/reservations/events/{event.id}", headers=headers_for(alice))
    assert response.status_code == 400
    assert response.json()["error"] == "EventInPast"


@pytest.mark.asyncio
async def test_admin_self_reservation(client: AsyncClient, make_event, admin_user):
    event = await make_event(max_capacity=3, creator=admin_user)

    response = await client.post(
        f"/api/v1/reservations/events/{event.id}", headers=headers_for(admin_user)
    )
    assert response.status_code == 400
    assert response.json()["error"] == "SelfReservationForbidden"


@pytest.mark.asyncio
async def test_concurrent_requests_for_last_spot(client: AsyncClient, make_event, alice, bob, ledger_state):
    """Exactly one of two simultaneous requests gets the last spot."""
    event = await make_event(max_capacity=1)
    url = f"/api/v1/reservations/events/{event.id}"

    responses = await asyncio.gather(
        client.post(url, headers=headers_for(alice)),
        client.post(url, headers=headers_for(bob)),
    )

    codes = sorted(r.status_code for r in responses)
    assert codes == [201, 400]
    rejected = next(r for r in responses if r.status_code == 400)
    assert rejected.json()["error"] == "NoCapacity"
    assert await ledger_state(event.id) == (1, 0, 1)


@pytest.mark.asyncio
async def test_cancel_reservation(client: AsyncClient, make_event, alice, ledger_state):
    event = await make_event(max_capacity=10)
    created = await client.post(f"/api/v1/reservations/events/{event.id}", headers=headers_for(alice))
    reservation_id = created.json()["id"]

    response = await client.delete(f"/api/v1/reservations/{reservation_id}", headers=headers_for(alice))
    assert response.status_code == 200
    assert response.json() == {
        "message": "Reservation canceled successfully",
        "reservation_id": reservation_id,
        "status": "canceled",
    }
    assert await ledger_state(event.id) == (10, 10, 0)

    again = await client.delete(f"/api/v1/reservations/{reservation_id}", headers=headers_for(alice))
    assert again.status_code == 400
    assert again.json()["error"] == "AlreadyCanceled"


@pytest.mark.asyncio
async def test_cancel_other_users_reservation(client: AsyncClient, make_event, alice, bob):
    event = await make_event(max_capacity=10)
    created = await client.post(f"/api/v1/reservations/events/{event.id}", headers=headers_for(alice))

    response = await client.delete(
        f"/api/v1/reservations/{created.json()['id']}", headers=headers_for(bob)
    )
    assert response.status_code == 403
    assert response.json()["error"] == "Forbidden"


@pytest.mark.asyncio
async def test_cancel_missing_reservation(client: AsyncClient, alice):
    response = await client.delete("/api/v1/reservations/99999", headers=headers_for(alice))
    assert response.status_code == 404
    assert response.json()["error"] == "ReservationNotFound"


@pytest.mark.asyncio
async def test_my_reservations(client: AsyncClient, make_event, alice, bob):
    first = await make_event(max_capacity=10, name="First")
    second = await make_event(max_capacity=10, name="Second")
    await client.post(f"/api/v1/reservations/events/{first.id}", headers=headers_for(alice))
    await client.post(f"/api/v1/reservations/events/{second.id}", headers=headers_for(alice))
    await client.post(f"/api/v1/reservations/events/{first.id}", headers=headers_for(bob))

    response = await client.get("/api/v1/reservations/mine", headers=headers_for(alice))
    assert response.status_code == 200
    data = response.json()
    assert data["pagination"]["total"] == 2
    assert {r["event_id"] for r in data["reservations"]} == {first.id, second.id}
    assert all(r["user_id"] == alice.id for r in data["reservations"])

    by_event = {r["event_id"]: r["event"] for r in data["reservations"]}
    assert by_event[first.id]["id"] == first.id
    assert by_event[first.id]["name"] == "First"
    assert by_event[second.id]["name"] == "Second"
    assert by_event[first.id]["location"] == "Test Venue"
    assert by_event[first.id]["online_link"] is None
    assert by_event[first.id]["event_date"] is not None
    for reservation in data["reservations"]:
        assert reservation["user"] == {
            "id": alice.id,
            "email": "alice@example.com",
            "first_name": "alice",
            "last_name": None,
        }


@pytest.mark.asyncio
async def test_check_reservation(client: AsyncClient, make_event, alice):
    event = await make_event(max_capacity=10)
    url = f"/api/v1/reservations/events/{event.id}/check"

    before = await client.get(url, headers=headers_for(alice))
    assert before.json() == {"has_reservation": False, "reservation": None}

    await client.post(f"/api/v1/reservations/events/{event.id}", headers=headers_for(alice))
    after = await client.get(url, headers=headers_for(alice))
    assert after.json()["has_reservation"] is True
    assert after.json()["reservation"]["event_id"] == event.id


@pytest.mark.asyncio
async def test_event_reservations_admin_only(client: AsyncClient, make_event, admin_user, alice, bob):
    event = await make_event(max_capacity=10)
    await client.post(f"/api/v1/reservations/events/{event.id}", headers=headers_for(alice))
    await client.post(f"/api/v1/reservations/events/{event.id}", headers=headers_for(bob))

    forbidden = await client.get(f"/api/v1/reservations/events/{event.id}", headers=headers_for(alice))
    assert forbidden.status_code == 403

    response = await client.get(f"/api/v1/reservations/events/{event.id}", headers=headers_for(admin_user))
    assert response.status_code == 200
    assert response.json()["pagination"]["total"] == 2


@pytest.mark.asyncio
async def test_all_reservations_filtered_by_status(client: AsyncClient, make_event, admin_user, alice, bob):
    event = await make_event(max_capacity=10)
    created = await client.post(f"/api/v1/reservations/events/{event.id}", headers=headers_for(alice))
    await client.post(f"/api/v1/reservations/events/{event.id}", headers=headers_for(bob))
    await client.delete(f"/api/v1/reservations/{created.json()['id']}", headers=headers_for(alice))

    response = await client.get("/api/v1/reservations/?status=canceled", headers=headers_for(admin_user))
    assert response.status_code == 200
    reservations = response.json()["reservations"]
    assert [r["user_id"] for r in reservations] == [alice.id]


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["cache"] == {"status": "disabled"}


@pytest.mark.asyncio
async def test_request_id_is_propagated(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "gw-1234"})
    assert response.headers["X-Request-ID"] == "gw-1234"
    assert response.headers["X-Response-Time"].endswith("ms")
