"""
Tests for user administration endpoints.
"""

import pytest
from httpx import AsyncClient

from conftest import headers_for


@pytest.mark.asyncio
async def test_list_users(client: AsyncClient, admin_user, alice, bob):
    response = await client.get("/api/v1/users/", headers=headers_for(admin_user))
    assert response.status_code == 200
    data = response.json()
    assert data["pagination"]["total"] == 3
    assert [u["id"] for u in data["users"]] == [bob.id, alice.id, admin_user.id]

    searched = await client.get(
        "/api/v1/users/", params={"search": "ALI"}, headers=headers_for(admin_user)
    )
    assert [u["email"] for u in searched.json()["users"]] == ["alice@example.com"]


@pytest.mark.asyncio
async def test_list_users_requires_admin(client: AsyncClient, alice):
    response = await client.get("/api/v1/users/", headers=headers_for(alice))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_get_user(client: AsyncClient, admin_user, alice):
    response = await client.get(f"/api/v1/users/{alice.id}", headers=headers_for(admin_user))
    assert response.status_code == 200
    assert response.json()["email"] == "alice@example.com"
    assert response.json()["role"] == "user"

    missing = await client.get("/api/v1/users/99999", headers=headers_for(admin_user))
    assert missing.status_code == 404
    assert missing.json()["error"] == "UserNotFound"


@pytest.mark.asyncio
async def test_update_user(client: AsyncClient, admin_user, bob):
    response = await client.put(
        f"/api/v1/users/{bob.id}",
        json={"last_name": "Builder", "role": "admin"},
        headers=headers_for(admin_user),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "User updated successfully"
    assert data["user"]["last_name"] == "Builder"
    assert data["user"]["role"] == "admin"
    assert data["user"]["first_name"] == "bob"


@pytest.mark.asyncio
async def test_update_user_email_taken(client: AsyncClient, admin_user, alice, bob):
    response = await client.put(
        f"/api/v1/users/{bob.id}",
        json={"email": "alice@example.com"},
        headers=headers_for(admin_user),
    )
    assert response.status_code == 409
    assert response.json()["error"] == "EmailTaken"

    unchanged = await client.get(f"/api/v1/users/{bob.id}", headers=headers_for(admin_user))
    assert unchanged.json()["email"] == "bob@example.com"


@pytest.mark.asyncio
async def test_keeping_own_email_is_not_a_conflict(client: AsyncClient, admin_user, bob):
    response = await client.put(
        f"/api/v1/users/{bob.id}",
        json={"email": "bob@example.com", "first_name": "Robert"},
        headers=headers_for(admin_user),
    )
    assert response.status_code == 200
    assert response.json()["user"]["first_name"] == "Robert"


@pytest.mark.asyncio
async def test_update_own_profile(client: AsyncClient, alice):
    response = await client.put(
        "/api/v1/users/profile/me",
        json={"first_name": "Alice", "last_name": "Liddell", "role": "admin"},
        headers=headers_for(alice),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Profile updated successfully"
    assert data["user"]["last_name"] == "Liddell"
    # Role is not part of a profile edit
    assert data["user"]["role"] == "user"


@pytest.mark.asyncio
async def test_admin_cannot_delete_self(client: AsyncClient, admin_user):
    response = await client.delete(f"/api/v1/users/{admin_user.id}", headers=headers_for(admin_user))
    assert response.status_code == 400
    assert response.json()["error"] == "SelfDeletionForbidden"

    still_there = await client.get(f"/api/v1/users/{admin_user.id}", headers=headers_for(admin_user))
    assert still_there.status_code == 200


@pytest.mark.asyncio
async def test_delete_user_requires_admin(client: AsyncClient, alice, bob):
    response = await client.delete(f"/api/v1/users/{bob.id}", headers=headers_for(alice))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_delete_missing_user(client: AsyncClient, admin_user):
    response = await client.delete("/api/v1/users/99999", headers=headers_for(admin_user))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_user_releases_spots_and_removes_their_events(
    client: AsyncClient, make_event, admin_user, alice, bob, cache_sink, ledger_state
):
    """Spots the user held elsewhere go back; events they created go away with their reservations."""
    concert = await make_event(max_capacity=5)
    own_meetup = await make_event(max_capacity=3, creator=alice)
    await client.post(f"/api/v1/reservations/events/{concert.id}", headers=headers_for(alice))
    await client.post(f"/api/v1/reservations/events/{concert.id}", headers=headers_for(bob))
    await client.post(f"/api/v1/reservations/events/{own_meetup.id}", headers=headers_for(bob))
    assert await ledger_state(concert.id) == (5, 3, 2)
    cache_sink.invalidated.clear()

    response = await client.delete(f"/api/v1/users/{alice.id}", headers=headers_for(admin_user))
    assert response.status_code == 200
    assert response.json() == {"message": "User deleted successfully", "user_id": alice.id}

    assert await ledger_state(concert.id) == (5, 4, 1)
    assert (await client.get(f"/api/v1/events/{own_meetup.id}")).status_code == 404
    assert (await client.get(f"/api/v1/users/{alice.id}", headers=headers_for(admin_user))).status_code == 404
    assert sorted(cache_sink.invalidated) == sorted([own_meetup.id, concert.id])

    bobs = await client.get("/api/v1/reservations/mine", headers=headers_for(bob))
    assert [r["event_id"] for r in bobs.json()["reservations"]] == [concert.id]
