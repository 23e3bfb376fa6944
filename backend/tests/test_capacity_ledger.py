"""
Tests for the capacity ledger: decrement/increment/resize and the spot invariant.
"""

import asyncio

import pytest

from eventhub.core.exceptions import (
    CapacityBelowReservedFloorError,
    EventNotFoundError,
    NoCapacityError,
)
from eventhub.core.security import Role
from eventhub.models.reservation import Reservation
from eventhub.services import capacity_ledger, reservation_service


@pytest.mark.asyncio
async def test_try_decrement_takes_one_spot(db_session, make_event, ledger_state):
    event = await make_event(max_capacity=3)

    available = await capacity_ledger.try_decrement(db_session, event.id)
    await db_session.commit()

    assert available == 2
    assert (await ledger_state(event.id))[:2] == (3, 2)


@pytest.mark.asyncio
async def test_try_decrement_at_zero_fails_without_mutation(db_session, make_event, ledger_state):
    event = await make_event(max_capacity=2, available_spots=0)

    with pytest.raises(NoCapacityError):
        await capacity_ledger.try_decrement(db_session, event.id)
    await db_session.rollback()

    assert (await ledger_state(event.id))[:2] == (2, 0)


@pytest.mark.asyncio
async def test_increment_releases_one_spot(db_session, make_event, ledger_state):
    event = await make_event(max_capacity=5, available_spots=2)

    available = await capacity_ledger.increment(db_session, event.id)
    await db_session.commit()

    assert available == 3
    assert (await ledger_state(event.id))[:2] == (5, 3)


@pytest.mark.asyncio
async def test_increment_is_clamped_at_max_capacity(db_session, make_event, ledger_state):
    event = await make_event(max_capacity=5)

    available = await capacity_ledger.increment(db_session, event.id)
    await db_session.commit()

    assert available == 5
    assert (await ledger_state(event.id))[:2] == (5, 5)


@pytest.mark.asyncio
async def test_increment_unknown_event(db_session):
    with pytest.raises(EventNotFoundError):
        await capacity_ledger.increment(db_session, 99999)


@pytest.mark.asyncio
async def test_lock_event_missing_returns_none(db_session):
    assert await capacity_ledger.lock_event(db_session, 99999) is None


@pytest.mark.asyncio
async def test_resize_up_keeps_reserved_count(db_session, make_event, ledger_state):
    # 4 of 10 reserved
    event = await make_event(max_capacity=10, available_spots=6)

    resized = await capacity_ledger.resize(db_session, event.id, 20)
    await db_session.commit()

    assert resized.max_capacity == 20
    assert resized.available_spots == 16
    assert (await ledger_state(event.id))[:2] == (20, 16)


@pytest.mark.asyncio
async def test_resize_down_to_exact_floor(db_session, make_event, ledger_state):
    event = await make_event(max_capacity=10, available_spots=6)

    resized = await capacity_ledger.resize(db_session, event.id, 4)
    await db_session.commit()

    assert (resized.max_capacity, resized.available_spots) == (4, 0)
    assert (await ledger_state(event.id))[:2] == (4, 0)


@pytest.mark.asyncio
async def test_resize_below_floor_is_rejected(db_session, make_event, ledger_state):
    event = await make_event(max_capacity=10, available_spots=6)

    with pytest.raises(CapacityBelowReservedFloorError) as exc_info:
        await capacity_ledger.resize(db_session, event.id, 3)
    await db_session.rollback()

    assert exc_info.value.reserved == 4
    assert exc_info.value.requested == 3
    assert (await ledger_state(event.id))[:2] == (10, 6)


@pytest.mark.asyncio
async def test_resize_unknown_event(db_session):
    with pytest.raises(EventNotFoundError):
        await capacity_ledger.resize(db_session, 99999, 10)


@pytest.mark.asyncio
async def test_concurrent_decrements_never_oversell(session_factory, make_event, ledger_state):
    """Ten callers race for three spots: exactly three win, the count ends at zero."""
    event = await make_event(max_capacity=3)

    async def take_spot() -> bool:
        async with session_factory() as session:
            try:
                await capacity_ledger.try_decrement(session, event.id)
                await session.commit()
                return True
            except NoCapacityError:
                await session.rollback()
                return False

    results = await asyncio.gather(*(take_spot() for _ in range(10)))

    assert results.count(True) == 3
    assert (await ledger_state(event.id))[:2] == (3, 0)


async def _hold_spots(session_factory, event_id, users):
    """Confirmed reservations that really took their spots from the ledger."""
    async with session_factory() as session:
        for user in users:
            await capacity_ledger.try_decrement(session, event_id)
            session.add(Reservation(event_id=event_id, user_id=user.id, status="confirmed"))
        await session.commit()


@pytest.mark.asyncio
async def test_resize_to_floor_races_new_reservation(
    session_factory, make_event, alice, bob, carol, cache_sink, ledger_state
):
    """Shrinking to the reserved count while someone books: exactly one of them loses."""
    event = await make_event(max_capacity=4)
    await _hold_spots(session_factory, event.id, [alice, bob])

    async def shrink():
        async with session_factory() as session:
            try:
                await capacity_ledger.resize(session, event.id, 2)
                await session.commit()
                return True
            except CapacityBelowReservedFloorError:
                await session.rollback()
                return False

    async def book():
        async with session_factory() as session:
            try:
                await reservation_service.create_reservation(
                    session, event.id, carol.id, Role.USER, cache=cache_sink
                )
                return True
            except NoCapacityError:
                return False

    resized, booked = await asyncio.gather(shrink(), book())

    assert resized != booked
    max_capacity, available, confirmed = await ledger_state(event.id)
    assert available == max_capacity - confirmed
    if resized:
        assert (max_capacity, available, confirmed) == (2, 0, 2)
    else:
        assert (max_capacity, available, confirmed) == (4, 1, 3)


@pytest.mark.asyncio
async def test_resize_rejected_when_spot_taken_after_lock(
    session_factory, make_event, alice, bob, carol, ledger_state, monkeypatch
):
    """The floor-guarded UPDATE rejects a resize whose locked snapshot went stale."""
    event = await make_event(max_capacity=4)
    await _hold_spots(session_factory, event.id, [alice, bob])
    real_lock_event = capacity_ledger.lock_event

    async def lock_then_lose_race(db, event_id):
        snapshot = await real_lock_event(db, event_id)
        # Another transaction books a spot between the read and the write
        await _hold_spots(session_factory, event_id, [carol])
        return snapshot

    monkeypatch.setattr(capacity_ledger, "lock_event", lock_then_lose_race)

    async with session_factory() as session:
        with pytest.raises(CapacityBelowReservedFloorError) as exc_info:
            await capacity_ledger.resize(session, event.id, 2)
        await session.rollback()

    assert exc_info.value.reserved == 3
    assert exc_info.value.requested == 2
    assert await ledger_state(event.id) == (4, 1, 3)
