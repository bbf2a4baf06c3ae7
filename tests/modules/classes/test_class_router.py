"""
HTTP tests for class registration, capacity and dashboard endpoints.
"""

import pytest

BASE = "/api/v1/classes"


async def enroll(client, student_id: str, class_id: str = "cls-101"):
    return await client.post(
        "/api/v1/enrollments", json={"student_id": student_id, "class_id": class_id}
    )


class TestClassRegistration:
    @pytest.mark.asyncio
    async def test_create_and_get(self, api_client):
        created = await api_client.post(
            BASE, json={"class_id": "cls-101", "capacity": 2, "title": "Biology"}
        )
        fetched = await api_client.get(f"{BASE}/cls-101")

        assert created.status_code == 201
        assert fetched.status_code == 200
        body = fetched.json()
        assert body["capacity"] == 2
        assert body["enrolled_count"] == 0
        assert body["available_spots"] == 2
        assert body["title"] == "Biology"

    @pytest.mark.asyncio
    async def test_duplicate_registration(self, api_client):
        await api_client.post(BASE, json={"class_id": "cls-101", "capacity": 2})

        response = await api_client.post(BASE, json={"class_id": "cls-101", "capacity": 5})

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "CLASS_ALREADY_EXISTS"

    @pytest.mark.asyncio
    async def test_unknown_class(self, api_client):
        response = await api_client.get(f"{BASE}/cls-404")

        assert response.status_code == 404


class TestCapacityEndpoint:
    @pytest.mark.asyncio
    async def test_increase_offers_seat_to_waitlist(self, api_client, hub, subscriber_factory):
        await api_client.post(BASE, json={"class_id": "cls-101", "capacity": 1})
        await enroll(api_client, "stu-a")
        await enroll(api_client, "stu-b")
        student_b = subscriber_factory()
        await hub.subscribe("student:stu-b", student_b)

        response = await api_client.put(f"{BASE}/cls-101/capacity", json={"capacity": 2})

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert student_b.events("waitlist-advancement")

    @pytest.mark.asyncio
    async def test_below_enrollment_rejected(self, api_client):
        await api_client.post(BASE, json={"class_id": "cls-101", "capacity": 2})
        await enroll(api_client, "stu-a")
        await enroll(api_client, "stu-b")

        response = await api_client.put(f"{BASE}/cls-101/capacity", json={"capacity": 1})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "INVALID_CAPACITY"


class TestWaitlistEndpoints:
    @pytest.mark.asyncio
    async def test_waitlist_listing_and_position(self, api_client):
        await api_client.post(BASE, json={"class_id": "cls-101", "capacity": 1})
        for student in ("stu-a", "stu-b", "stu-c"):
            await enroll(api_client, student)

        listing = await api_client.get(f"{BASE}/cls-101/waitlist")
        position = await api_client.get(f"{BASE}/cls-101/waitlist/stu-c")

        body = listing.json()
        assert body["total_waitlisted"] == 2
        assert [e["student_id"] for e in body["entries"]] == ["stu-b", "stu-c"]
        assert position.json()["position"] == 2
        assert position.json()["students_ahead"] == 1
        # Nobody has waited yet, so the default pace applies to position 2
        assert position.json()["estimated_wait_days"] == 5.0
        assert position.json()["estimated_wait"] == "5 days"

    @pytest.mark.asyncio
    async def test_not_waitlisted(self, api_client):
        await api_client.post(BASE, json={"class_id": "cls-101", "capacity": 1})

        response = await api_client.get(f"{BASE}/cls-101/waitlist/stu-z")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "NOT_WAITLISTED"


class TestRealtimeStats:
    @pytest.mark.asyncio
    async def test_dashboard_counts(self, api_client, hub, subscriber_factory):
        await api_client.post(
            BASE, json={"class_id": "cls-101", "capacity": 1, "teacher_id": "t-1"}
        )
        await enroll(api_client, "stu-a")
        await enroll(api_client, "stu-b")
        await hub.subscribe("class:cls-101", subscriber_factory())
        await hub.subscribe("teacher:t-1", subscriber_factory())

        response = await api_client.get(f"{BASE}/cls-101/realtime-stats")

        body = response.json()
        assert body["enrollment"] == {
            "current": 1,
            "capacity": 1,
            "available": 0,
            "by_status": {
                "pending": 0,
                "enrolled": 1,
                "waitlisted": 1,
                "dropped": 0,
                "denied": 0,
            },
        }
        assert body["waitlist"]["total"] == 1
        assert body["activity"]["enrollments"] == 1
        assert body["activity"]["waitlisted"] == 1
        assert body["subscribers"] == 2
