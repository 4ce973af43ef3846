"""
Tests for the allocation ledger: allocate, end, edit and look up allocations,
and the room and student state that follows them.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from app.models.allocation import Allocation
from app.models.bed import BedStatus
from app.models.room import RoomStatus
from conftest import fetch_beds, fetch_room, fetch_student


async def _allocate(client: AsyncClient, headers: dict, student, room, bed):
    return await client.post(
        "/api/v1/allocations/",
        json={"student_id": student.id, "room_id": room.id, "bed_id": bed.id},
        headers=headers,
    )


async def _count_allocations(db, student_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(Allocation).where(Allocation.student_id == student_id)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_allocate_bed(client: AsyncClient, staff_headers, db_session, double_room, student):
    """Allocating claims the bed and mirrors the room number on the student."""
    room, beds = double_room
    response = await _allocate(client, staff_headers, student, room, beds[0])
    assert response.status_code == 201
    data = response.json()
    assert data["student_id"] == student.id
    assert data["bed_id"] == beds[0].id
    assert data["active"] is True
    assert data["end_date"] is None
    assert data["payment_status"] == "pending"

    bed_states = await fetch_beds(db_session, room.id)
    assert bed_states[0].status == BedStatus.OCCUPIED
    assert bed_states[0].occupied_by == student.id
    assert bed_states[1].status == BedStatus.AVAILABLE

    fresh = await fetch_room(db_session, room.id)
    assert fresh.occupied_count == 1
    assert fresh.status == RoomStatus.AVAILABLE
    assert (await fetch_student(db_session, student.id)).room_number == "101"


@pytest.mark.asyncio
async def test_allocate_with_payment_status(client: AsyncClient, staff_headers, single_room, student):
    room, beds = single_room
    response = await client.post(
        "/api/v1/allocations/",
        json={
            "student_id": student.id,
            "room_id": room.id,
            "bed_id": beds[0].id,
            "payment_status": "paid",
            "start_date": "2026-09-01T00:00:00Z",
        },
        headers=staff_headers,
    )
    assert response.status_code == 201
    assert response.json()["payment_status"] == "paid"


@pytest.mark.asyncio
async def test_two_bed_room_walkthrough(
    client: AsyncClient, staff_headers, db_session, double_room,
    student, second_student, third_student,
):
    """Fill a two-bed room, reject a third student, release one bed, then shrink."""
    room, beds = double_room

    assert (await _allocate(client, staff_headers, student, room, beds[0])).status_code == 201
    fresh = await fetch_room(db_session, room.id)
    assert (fresh.occupied_count, fresh.status) == (1, RoomStatus.AVAILABLE)

    assert (await _allocate(client, staff_headers, second_student, room, beds[1])).status_code == 201
    fresh = await fetch_room(db_session, room.id)
    assert (fresh.occupied_count, fresh.status) == (2, RoomStatus.OCCUPIED)

    # Room is full, so the third student is turned away before the bed is looked at
    response = await _allocate(client, staff_headers, third_student, room, beds[0])
    assert response.status_code == 409
    assert response.json()["kind"] == "capacity_conflict"
    assert await _count_allocations(db_session, third_student.id) == 0

    first = await client.get(f"/api/v1/allocations/students/{student.id}", headers=staff_headers)
    response = await client.delete(f"/api/v1/allocations/{first.json()['id']}", headers=staff_headers)
    assert response.status_code == 200

    bed_states = await fetch_beds(db_session, room.id)
    assert [b.status for b in bed_states] == [BedStatus.AVAILABLE, BedStatus.OCCUPIED]
    fresh = await fetch_room(db_session, room.id)
    assert (fresh.occupied_count, fresh.status) == (1, RoomStatus.AVAILABLE)

    # Occupancy is recounted from beds, so shrinking to the one occupied bed is allowed
    response = await client.put(f"/api/v1/rooms/{room.id}", json={"capacity": 1}, headers=staff_headers)
    assert response.status_code == 200
    bed_states = await fetch_beds(db_session, room.id)
    assert [(b.bed_number, b.status) for b in bed_states] == [(2, BedStatus.OCCUPIED)]
    fresh = await fetch_room(db_session, room.id)
    assert (fresh.capacity, fresh.occupied_count, fresh.status) == (1, 1, RoomStatus.OCCUPIED)


@pytest.mark.asyncio
async def test_allocate_occupied_bed_in_open_room(
    client: AsyncClient, staff_headers, db_session, double_room, student, second_student
):
    """An occupied bed is refused even while the room still has space."""
    room, beds = double_room
    await _allocate(client, staff_headers, student, room, beds[0])

    response = await _allocate(client, staff_headers, second_student, room, beds[0])
    assert response.status_code == 409
    assert response.json() == {"detail": "Bed is not available", "kind": "conflict"}
    assert await _count_allocations(db_session, second_student.id) == 0


@pytest.mark.asyncio
async def test_allocate_into_full_room(
    client: AsyncClient, staff_headers, db_session, single_room, student, second_student
):
    room, beds = single_room
    await _allocate(client, staff_headers, student, room, beds[0])

    response = await _allocate(client, staff_headers, second_student, room, beds[0])
    assert response.status_code == 409
    assert response.json()["kind"] == "capacity_conflict"
    assert await _count_allocations(db_session, second_student.id) == 0


@pytest.mark.asyncio
async def test_allocate_bed_from_other_room(
    client: AsyncClient, staff_headers, db_session, double_room, single_room, student
):
    room, _ = double_room
    _, other_beds = single_room

    response = await _allocate(client, staff_headers, student, room, other_beds[0])
    assert response.status_code == 409
    assert response.json()["detail"] == "Bed does not belong to the specified room"

    assert (await fetch_beds(db_session, room.id))[0].status == BedStatus.AVAILABLE
    assert (await fetch_student(db_session, student.id)).room_number is None


@pytest.mark.asyncio
async def test_allocate_bed_under_maintenance(
    client: AsyncClient, staff_headers, double_room, student
):
    room, beds = double_room
    await client.patch(
        f"/api/v1/rooms/{room.id}/beds/{beds[1].id}",
        json={"status": "maintenance"},
        headers=staff_headers,
    )

    response = await _allocate(client, staff_headers, student, room, beds[1])
    assert response.status_code == 409
    assert response.json()["detail"] == "Bed is not available"


@pytest.mark.asyncio
async def test_allocate_into_maintenance_room(
    client: AsyncClient, staff_headers, double_room, student
):
    room, beds = double_room
    await client.put(f"/api/v1/rooms/{room.id}", json={"status": "maintenance"}, headers=staff_headers)

    response = await _allocate(client, staff_headers, student, room, beds[0])
    assert response.status_code == 409
    assert response.json()["kind"] == "conflict"


@pytest.mark.asyncio
async def test_allocate_student_twice(
    client: AsyncClient, staff_headers, db_session, double_room, student
):
    """A student holds at most one active allocation."""
    room, beds = double_room
    await _allocate(client, staff_headers, student, room, beds[0])

    response = await _allocate(client, staff_headers, student, room, beds[1])
    assert response.status_code == 409
    assert (await fetch_beds(db_session, room.id))[1].status == BedStatus.AVAILABLE


@pytest.mark.asyncio
async def test_allocate_unknown_student(client: AsyncClient, staff_headers, double_room):
    room, beds = double_room
    response = await client.post(
        "/api/v1/allocations/",
        json={"student_id": 99999, "room_id": room.id, "bed_id": beds[0].id},
        headers=staff_headers,
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Student not found"


@pytest.mark.asyncio
async def test_allocate_staff_account_as_student(
    client: AsyncClient, staff_headers, staff_user, double_room
):
    """Only student accounts can hold a bed."""
    room, beds = double_room
    response = await _allocate(client, staff_headers, staff_user, room, beds[0])
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_allocate_unknown_room_and_bed(client: AsyncClient, staff_headers, double_room, student):
    room, _ = double_room
    response = await client.post(
        "/api/v1/allocations/",
        json={"student_id": student.id, "room_id": 99999, "bed_id": 1},
        headers=staff_headers,
    )
    assert response.status_code == 404

    response = await client.post(
        "/api/v1/allocations/",
        json={"student_id": student.id, "room_id": room.id, "bed_id": 99999},
        headers=staff_headers,
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_allocate_missing_field(client: AsyncClient, staff_headers, student):
    response = await client.post(
        "/api/v1/allocations/", json={"student_id": student.id}, headers=staff_headers
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_allocate_requires_staff(client: AsyncClient, student_headers, double_room, student):
    room, beds = double_room
    response = await _allocate(client, student_headers, student, room, beds[0])
    assert response.status_code == 403

    response = await _allocate(client, {}, student, room, beds[0])
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_allocate_then_end(client: AsyncClient, staff_headers, db_session, double_room, student):
    """Ending frees the bed, clears the student's room and keeps the record."""
    room, beds = double_room
    created = await _allocate(client, staff_headers, student, room, beds[0])
    allocation_id = created.json()["id"]

    response = await client.delete(f"/api/v1/allocations/{allocation_id}", headers=staff_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Allocation ended successfully"
    assert data["allocation_id"] == allocation_id
    assert data["active"] is False
    assert data["end_date"] is not None

    assert (await fetch_beds(db_session, room.id))[0].status == BedStatus.AVAILABLE
    assert (await fetch_beds(db_session, room.id))[0].occupied_by is None
    assert (await fetch_student(db_session, student.id)).room_number is None
    fresh = await fetch_room(db_session, room.id)
    assert (fresh.occupied_count, fresh.status) == (0, RoomStatus.AVAILABLE)

    rows = (await db_session.execute(
        select(Allocation).where(Allocation.student_id == student.id)
        .execution_options(populate_existing=True)
    )).scalars().all()
    assert len(rows) == 1
    assert rows[0].active is False
    assert rows[0].end_date is not None


@pytest.mark.asyncio
async def test_end_allocation_twice(client: AsyncClient, staff_headers, db_session, double_room, student):
    """Ending an ended allocation succeeds and changes nothing."""
    room, beds = double_room
    created = await _allocate(client, staff_headers, student, room, beds[0])
    allocation_id = created.json()["id"]

    first = await client.delete(f"/api/v1/allocations/{allocation_id}", headers=staff_headers)
    second = await client.delete(f"/api/v1/allocations/{allocation_id}", headers=staff_headers)
    assert second.status_code == 200
    assert second.json()["active"] is False
    assert second.json()["end_date"] == first.json()["end_date"]

    fresh = await fetch_room(db_session, room.id)
    assert (fresh.occupied_count, fresh.status) == (0, RoomStatus.AVAILABLE)


@pytest.mark.asyncio
async def test_end_ended_allocation_keeps_new_occupant(
    client: AsyncClient, staff_headers, db_session, single_room, student, second_student
):
    """Re-ending an old allocation does not evict whoever holds the bed now."""
    room, beds = single_room
    old = await _allocate(client, staff_headers, student, room, beds[0])
    await client.delete(f"/api/v1/allocations/{old.json()['id']}", headers=staff_headers)
    await _allocate(client, staff_headers, second_student, room, beds[0])

    response = await client.delete(f"/api/v1/allocations/{old.json()['id']}", headers=staff_headers)
    assert response.status_code == 200

    bed = (await fetch_beds(db_session, room.id))[0]
    assert (bed.status, bed.occupied_by) == (BedStatus.OCCUPIED, second_student.id)
    assert (await fetch_room(db_session, room.id)).occupied_count == 1
    assert (await fetch_student(db_session, second_student.id)).room_number == "201"


@pytest.mark.asyncio
async def test_end_unknown_allocation(client: AsyncClient, staff_headers):
    response = await client.delete("/api/v1/allocations/99999", headers=staff_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_room_status_follows_beds(
    client: AsyncClient, staff_headers, db_session, double_room, student, second_student
):
    """Filling every bed closes the room; ending any allocation reopens it."""
    room, beds = double_room
    await _allocate(client, staff_headers, student, room, beds[0])
    second = await _allocate(client, staff_headers, second_student, room, beds[1])
    assert (await fetch_room(db_session, room.id)).status == RoomStatus.OCCUPIED

    await client.delete(f"/api/v1/allocations/{second.json()['id']}", headers=staff_headers)
    fresh = await fetch_room(db_session, room.id)
    assert (fresh.occupied_count, fresh.status) == (1, RoomStatus.AVAILABLE)


@pytest.mark.asyncio
async def test_occupied_count_over_repeated_cycles(
    client: AsyncClient, staff_headers, db_session, single_room, student
):
    """The occupied count does not drift over many allocate/end cycles."""
    room, beds = single_room
    for _ in range(3):
        created = await _allocate(client, staff_headers, student, room, beds[0])
        assert created.status_code == 201
        assert (await fetch_room(db_session, room.id)).occupied_count == 1

        await client.delete(f"/api/v1/allocations/{created.json()['id']}", headers=staff_headers)
        fresh = await fetch_room(db_session, room.id)
        assert (fresh.occupied_count, fresh.status) == (0, RoomStatus.AVAILABLE)

    assert await _count_allocations(db_session, student.id) == 3


@pytest.mark.asyncio
async def test_update_allocation(client: AsyncClient, staff_headers, db_session, double_room, student):
    """Editing payment status and end date leaves the stay active."""
    room, beds = double_room
    created = await _allocate(client, staff_headers, student, room, beds[0])

    response = await client.put(
        f"/api/v1/allocations/{created.json()['id']}",
        json={"payment_status": "paid", "end_date": "2027-06-30T00:00:00Z"},
        headers=staff_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["payment_status"] == "paid"
    assert data["end_date"].startswith("2027-06-30")
    assert data["active"] is True
    assert (await fetch_beds(db_session, room.id))[0].status == BedStatus.OCCUPIED


@pytest.mark.asyncio
async def test_end_keeps_planned_end_date(client: AsyncClient, staff_headers, double_room, student):
    room, beds = double_room
    created = await _allocate(client, staff_headers, student, room, beds[0])
    allocation_id = created.json()["id"]
    await client.put(
        f"/api/v1/allocations/{allocation_id}",
        json={"end_date": "2027-06-30T00:00:00Z"},
        headers=staff_headers,
    )

    response = await client.delete(f"/api/v1/allocations/{allocation_id}", headers=staff_headers)
    assert response.json()["end_date"].startswith("2027-06-30")


@pytest.mark.asyncio
async def test_update_allocation_bad_input(client: AsyncClient, staff_headers, double_room, student):
    room, beds = double_room
    created = await _allocate(client, staff_headers, student, room, beds[0])

    response = await client.put(
        f"/api/v1/allocations/{created.json()['id']}",
        json={"payment_status": "waived"},
        headers=staff_headers,
    )
    assert response.status_code == 422

    response = await client.put(
        "/api/v1/allocations/99999", json={"payment_status": "paid"}, headers=staff_headers
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_student_views_own_allocation(
    client: AsyncClient, staff_headers, student_headers, double_room, student
):
    room, beds = double_room
    await _allocate(client, staff_headers, student, room, beds[1])

    response = await client.get(f"/api/v1/allocations/students/{student.id}", headers=student_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["room"]["room_number"] == "101"
    assert data["bed"]["bed_number"] == 2
    assert data["active"] is True


@pytest.mark.asyncio
async def test_student_cannot_view_other_allocation(
    client: AsyncClient, staff_headers, second_student_headers, double_room, student
):
    room, beds = double_room
    await _allocate(client, staff_headers, student, room, beds[0])

    response = await client.get(
        f"/api/v1/allocations/students/{student.id}", headers=second_student_headers
    )
    assert response.status_code == 403

    response = await client.get(f"/api/v1/allocations/students/{student.id}", headers=staff_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_student_without_allocation(client: AsyncClient, student_headers, student):
    response = await client.get(f"/api/v1/allocations/students/{student.id}", headers=student_headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "No active allocation found for this student"


@pytest.mark.asyncio
async def test_recent_allocations(
    client: AsyncClient, staff_headers, double_room, student, second_student
):
    """Newest first, with display fields and Active/Ended status."""
    room, beds = double_room
    first = await _allocate(client, staff_headers, student, room, beds[0])
    await _allocate(client, staff_headers, second_student, room, beds[1])
    await client.delete(f"/api/v1/allocations/{first.json()['id']}", headers=staff_headers)

    response = await client.get("/api/v1/allocations/recent", headers=staff_headers)
    assert response.status_code == 200
    data = response.json()
    assert [(a["student_name"], a["status"]) for a in data] == [
        ("Ben Okafor", "Active"),
        ("Asha Rao", "Ended"),
    ]
    assert all(a["room_number"] == "101" and a["type"] == "double" for a in data)

    response = await client.get("/api/v1/allocations/recent?limit=1", headers=staff_headers)
    assert len(response.json()) == 1


@pytest.mark.asyncio
async def test_recent_allocations_after_room_deleted(
    client: AsyncClient, staff_headers, single_room, student
):
    """History outlives its room; the room renders as Unknown."""
    room, beds = single_room
    created = await _allocate(client, staff_headers, student, room, beds[0])
    await client.delete(f"/api/v1/allocations/{created.json()['id']}", headers=staff_headers)
    assert (await client.delete(f"/api/v1/rooms/{room.id}", headers=staff_headers)).status_code == 200

    response = await client.get("/api/v1/allocations/recent", headers=staff_headers)
    assert response.json()[0]["room_number"] == "Unknown"
    assert response.json()[0]["student_name"] == "Asha Rao"


@pytest.mark.asyncio
async def test_recent_allocations_staff_only(client: AsyncClient, student_headers):
    response = await client.get("/api/v1/allocations/recent", headers=student_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_room_renumber_updates_residents(
    client: AsyncClient, staff_headers, db_session, double_room, student, second_student
):
    """Renaming a room rewrites the room number cached on its residents only."""
    room, beds = double_room
    await _allocate(client, staff_headers, student, room, beds[0])

    response = await client.put(
        f"/api/v1/rooms/{room.id}", json={"room_number": "101A"}, headers=staff_headers
    )
    assert response.status_code == 200
    assert (await fetch_student(db_session, student.id)).room_number == "101A"
    assert (await fetch_student(db_session, second_student.id)).room_number is None


@pytest.mark.asyncio
async def test_update_ended_allocation_rejected(
    client: AsyncClient, staff_headers, double_room, student
):
    """Ended allocations are history and cannot be edited."""
    room, beds = double_room
    created = await _allocate(client, staff_headers, student, room, beds[0])
    allocation_id = created.json()["id"]
    ended = await client.delete(f"/api/v1/allocations/{allocation_id}", headers=staff_headers)

    response = await client.put(
        f"/api/v1/allocations/{allocation_id}",
        json={"payment_status": "refunded"},
        headers=staff_headers,
    )
    assert response.status_code == 409
    assert response.json()["kind"] == "conflict"

    again = await client.delete(f"/api/v1/allocations/{allocation_id}", headers=staff_headers)
    assert again.json()["end_date"] == ended.json()["end_date"]


@pytest.mark.asyncio
async def test_listing_cache_cleared_after_commit(
    client: AsyncClient, staff_headers, db_session, double_room, student, monkeypatch
):
    """The room listing cache is cleared only once the allocation is committed."""
    from app.api.routes import allocations as allocation_routes

    room, beds = double_room
    events = []
    real_commit = db_session.commit

    async def commit():
        events.append("commit")
        await real_commit()

    async def invalidate():
        events.append("invalidate")

    monkeypatch.setattr(db_session, "commit", commit)
    monkeypatch.setattr(allocation_routes, "invalidate_room_cache", invalidate)

    created = await _allocate(client, staff_headers, student, room, beds[0])
    assert created.status_code == 201
    assert events[:2] == ["commit", "invalidate"]

    events.clear()
    await client.delete(f"/api/v1/allocations/{created.json()['id']}", headers=staff_headers)
    assert events[:2] == ["commit", "invalidate"]
