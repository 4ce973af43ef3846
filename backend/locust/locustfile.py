"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test double allocation
  locust -f locustfile.py --tags throughput   # Test cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import random
import string
from locust import HttpUser, task, between, tag, events

# Shared state
ROOM_IDS = []
CONCURRENCY_ROOM = {"id": None, "bed_ids": []}
PASSWORD = "loadtest123"


def random_email(prefix="load"):
    return f"{prefix}_{random.randint(100000, 999999)}@example.com"


def random_name():
    return "U " + "".join(random.choices(string.ascii_lowercase, k=8))


def register_and_login(client, role):
    """Register an account and return (user_id, auth headers)."""
    email = random_email(role)
    resp = client.post("/api/v1/auth/register", json={
        "email": email,
        "name": random_name(),
        "password": PASSWORD,
        "role": role,
    })
    user_id = resp.json()["id"] if resp.status_code == 201 else None

    resp = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    if resp.status_code != 200:
        return user_id, {}
    return user_id, {"Authorization": f"Bearer {resp.json()['access_token']}"}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """Setup: Room with limited beds is created by the first concurrency user."""
    print("\n" + "="*60)
    print("SETUP: Creating concurrency test room...")
    print("="*60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 students -> 10 beds

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT bed_id, COUNT(*) FROM allocations WHERE active GROUP BY bed_id HAVING COUNT(*) > 1;
    Should return no rows
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        _, self.headers = register_and_login(self.client, "staff")
        self.student_id, _ = register_and_login(self.client, "student")

        # Create room with limited beds
        if self.headers and not CONCURRENCY_ROOM["id"]:
            resp = self.client.post("/api/v1/rooms/",
                json={
                    "room_number": f"LOAD-{random.randint(1000, 9999)}",
                    "floor": 1,
                    "capacity": 10,
                    "type": "dormitory",
                    "amenities": ["wifi"],
                },
                headers=self.headers
            )
            if resp.status_code == 201:
                CONCURRENCY_ROOM["id"] = resp.json()["room"]["id"]
                CONCURRENCY_ROOM["bed_ids"] = [b["id"] for b in resp.json()["beds"]]
                print(f"\n✓ Created room {CONCURRENCY_ROOM['id']} with 10 beds\n")

    @tag("concurrency")
    @task
    def allocate_contended_bed(self):
        """All students fight for the same 10 beds."""
        if not CONCURRENCY_ROOM["id"] or not self.headers or not self.student_id:
            return

        with self.client.post("/api/v1/allocations/",
            json={
                "student_id": self.student_id,
                "room_id": CONCURRENCY_ROOM["id"],
                "bed_id": random.choice(CONCURRENCY_ROOM["bed_ids"]),
            },
            headers=self.headers,
            catch_response=True,
            name="/api/v1/allocations/ [contended]"
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: bed taken or room full
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: Stop Redis, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_available_rooms_cached(self):
        """Hammer the cached endpoint."""
        resp = self.client.get("/api/v1/rooms/available",
            name="/api/v1/rooms/available [cached]")
        if resp.status_code == 200:
            for room in resp.json():
                if room["id"] not in ROOM_IDS:
                    ROOM_IDS.append(room["id"])

    @tag("throughput", "read")
    @task(3)
    def list_beds(self):
        """Read the beds of a room."""
        if ROOM_IDS:
            room_id = random.choice(ROOM_IDS)
            self.client.get(f"/api/v1/rooms/{room_id}/beds",
                name="/api/v1/rooms/{id}/beds")

    @tag("throughput")
    @task(1)
    def health_check(self):
        """Monitor system health."""
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        _, self.headers = register_and_login(self.client, "staff")
        self.student_id, self.student_headers = register_and_login(self.client, "student")

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_room(self):
        """Allocate into non-existent room."""
        with self.client.post("/api/v1/allocations/",
            json={"student_id": self.student_id or 1, "room_id": 999999, "bed_id": 1},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def zero_capacity_room(self):
        """Create a room without beds."""
        with self.client.post("/api/v1/rooms/",
            json={"room_number": "ZERO", "floor": 1, "capacity": 0, "type": "single"},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def shrink_to_nothing(self):
        """Shrink a room to a negative capacity."""
        with self.client.put("/api/v1/rooms/1",
            json={"capacity": -5},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def occupy_bed_directly(self):
        """Flip a bed to occupied without an allocation."""
        with self.client.patch("/api/v1/rooms/1/beds/1",
            json={"status": "occupied"},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def malformed_json(self):
        """Send garbage data."""
        with self.client.post("/api/v1/allocations/",
            data="not json at all",
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def student_allocates(self):
        """Students cannot allocate beds."""
        with self.client.post("/api/v1/allocations/",
            json={"student_id": self.student_id or 1, "room_id": 1, "bed_id": 1},
            headers=self.student_headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [403])

    @tag("edge")
    @task
    def missing_auth(self):
        """Try allocating without auth."""
        with self.client.post("/api/v1/allocations/",
            json={"student_id": 1, "room_id": 1, "bed_id": 1},
            catch_response=True
        ) as resp:
            self._expect(resp, [401])


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates a move-in week:
      - Mostly browsing rooms (80%)
      - Some allocations and check-outs (15%)
      - Rare room creation (5%)
    """
    wait_time = between(1, 3)

    def on_start(self):
        _, self.headers = register_and_login(self.client, "staff")
        self.student_id, _ = register_and_login(self.client, "student")
        self.allocation_id = None

    @task(50)
    def browse_rooms(self):
        """Most common: browsing."""
        resp = self.client.get("/api/v1/rooms/available")
        if resp.status_code == 200:
            for room in resp.json():
                if room["id"] not in ROOM_IDS:
                    ROOM_IDS.append(room["id"])

    @task(20)
    def view_room(self):
        """View details."""
        if ROOM_IDS:
            self.client.get(f"/api/v1/rooms/{random.choice(ROOM_IDS)}",
                name="/api/v1/rooms/{id}")

    @task(10)
    def allocate_or_check_out(self):
        """Occasional allocation, or check-out when already housed."""
        if not self.headers or not self.student_id:
            return

        if self.allocation_id:
            self.client.delete(f"/api/v1/allocations/{self.allocation_id}",
                headers=self.headers, name="/api/v1/allocations/{id}")
            self.allocation_id = None
            return

        if not ROOM_IDS:
            return
        room_id = random.choice(ROOM_IDS)
        beds = self.client.get(f"/api/v1/rooms/{room_id}/beds", name="/api/v1/rooms/{id}/beds")
        if beds.status_code != 200:
            return
        free = [b["id"] for b in beds.json() if b["status"] == "available"]
        if not free:
            return

        resp = self.client.post("/api/v1/allocations/",
            json={"student_id": self.student_id, "room_id": room_id, "bed_id": random.choice(free)},
            headers=self.headers)
        if resp.status_code == 201:
            self.allocation_id = resp.json()["id"]

    @task(3)
    def create_room(self):
        """Rare: create new room."""
        if self.headers:
            resp = self.client.post("/api/v1/rooms/",
                json={
                    "room_number": f"R-{random.randint(1, 10**6)}",
                    "floor": random.randint(0, 5),
                    "capacity": random.randint(1, 6),
                    "type": random.choice(["single", "double", "dormitory"]),
                },
                headers=self.headers)
            if resp.status_code == 201:
                ROOM_IDS.append(resp.json()["room"]["id"])
