"""
Locust Load Test Suite

Users are managed upstream, so seed caller identities first:
  INSERT INTO users (email, first_name, role)
  SELECT 'load' || n || '@test.com', 'load' || n, 'user' FROM generate_series(1, 500) n;
  INSERT INTO users (email, first_name, role) VALUES ('load-admin@test.com', 'admin', 'admin');

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Last-spot contention
  locust -f locustfile.py --tags throughput   # Cached reads
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag, events

ADMIN_ID = int(os.getenv("LOAD_ADMIN_ID", "501"))
USER_ID_RANGE = (1, int(os.getenv("LOAD_USER_COUNT", "500")))
CONTENDED_SPOTS = 10

# Shared state
EVENT_IDS = []
CONCURRENCY_EVENT_ID = None


def admin_headers() -> dict:
    return {"X-User-Id": str(ADMIN_ID), "X-User-Role": "admin"}


def random_user_headers() -> dict:
    return {"X-User-Id": str(random.randint(*USER_ID_RANGE)), "X-User-Role": "user"}


def future_date(days: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"SETUP: events are created as admin {ADMIN_ID}, callers drawn from users {USER_ID_RANGE}")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users -> 10 spots

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT max_capacity, available_spots FROM events WHERE id = X;
      SELECT COUNT(*) FROM reservations WHERE event_id = X AND status = 'confirmed';
    available_spots must equal max_capacity minus the confirmed count.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = random_user_headers()
        if not CONCURRENCY_EVENT_ID:
            resp = self.client.post(
                "/api/v1/events/",
                json={
                    "name": "Concurrency Test Event",
                    "description": f"{CONTENDED_SPOTS} spots only",
                    "event_date": future_date(30),
                    "location": "Test",
                    "max_capacity": CONTENDED_SPOTS,
                },
                headers=admin_headers(),
            )
            if resp.status_code == 201:
                globals()["CONCURRENCY_EVENT_ID"] = resp.json()["id"]
                print(f"\nCreated event {CONCURRENCY_EVENT_ID} with {CONTENDED_SPOTS} spots\n")

    @tag("concurrency")
    @task
    def reserve_contended_spot(self):
        """All users fight for the same spots."""
        if not CONCURRENCY_EVENT_ID:
            return

        with self.client.post(
            f"/api/v1/reservations/events/{CONCURRENCY_EVENT_ID}",
            headers=self.headers,
            name="/api/v1/reservations/events/{id}",
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 400 and resp.json().get("error") == "NoCapacity":
                resp.success()  # Expected: fully booked
            elif resp.status_code == 409:
                resp.success()  # Expected: this caller already holds a spot
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false on the API, run again

    Compare avg response time, requests/sec and P95/P99 latency.
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_events_cached(self):
        page = random.randint(1, 5)
        self.client.get(f"/api/v1/events/?page={page}&limit=20", name="/api/v1/events/ [cached]")

    @tag("throughput", "read")
    @task(3)
    def get_event_detail(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}", name="/api/v1/events/{id}")

    @tag("throughput", "read")
    @task(2)
    def popular_events(self):
        self.client.get("/api/v1/events/popular")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = random_user_headers()

    def _expect(self, resp, allowed):
        if resp.status_code in allowed:
            resp.success()
        else:
            resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_event_id(self):
        with self.client.post(
            "/api/v1/reservations/events/999999", headers=self.headers, catch_response=True
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def cancel_unknown_reservation(self):
        with self.client.delete(
            "/api/v1/reservations/999999", headers=self.headers, catch_response=True
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def shrink_below_reservations(self):
        if not CONCURRENCY_EVENT_ID:
            return
        with self.client.patch(
            f"/api/v1/events/{CONCURRENCY_EVENT_ID}/capacity",
            json={"max_capacity": 1},
            headers=admin_headers(),
            catch_response=True,
        ) as resp:
            # 200 only while at most one spot is taken
            self._expect(resp, [200, 400])

    @tag("edge")
    @task
    def zero_capacity(self):
        with self.client.post(
            "/api/v1/events/",
            json={"name": "Zero", "event_date": future_date(5), "max_capacity": 0},
            headers=admin_headers(),
            catch_response=True,
        ) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/events/", data="not json at all", headers=admin_headers(), catch_response=True
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def missing_identity(self):
        with self.client.post("/api/v1/reservations/events/1", catch_response=True) as resp:
            self._expect(resp, [401])


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Mostly browsing, some reservations and cancels, rare event creation.
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = random_user_headers()
        self.reservation_ids = []

    @task(50)
    def browse_events(self):
        resp = self.client.get("/api/v1/events/?page=1&limit=20")
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @task(20)
    def view_event(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}", name="/api/v1/events/{id}")

    @task(10)
    def reserve(self):
        if not EVENT_IDS:
            return
        resp = self.client.post(
            f"/api/v1/reservations/events/{random.choice(EVENT_IDS)}",
            headers=self.headers,
            name="/api/v1/reservations/events/{id}",
        )
        if resp.status_code == 201:
            self.reservation_ids.append(resp.json()["id"])

    @task(4)
    def cancel(self):
        if self.reservation_ids:
            reservation_id = self.reservation_ids.pop()
            self.client.delete(
                f"/api/v1/reservations/{reservation_id}",
                headers=self.headers,
                name="/api/v1/reservations/{id}",
            )

    @task(3)
    def my_reservations(self):
        self.client.get("/api/v1/reservations/mine", headers=self.headers)

    @task(1)
    def create_event(self):
        resp = self.client.post(
            "/api/v1/events/",
            json={
                "name": f"Event {random.randint(1, 10000)}",
                "description": "Load test event",
                "event_date": future_date(random.randint(1, 90)),
                "location": "Venue",
                "max_capacity": random.randint(10, 500),
            },
            headers=admin_headers(),
        )
        if resp.status_code == 201:
            EVENT_IDS.append(resp.json()["id"])
