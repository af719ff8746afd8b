"""
Integration tests for the REST API endpoints.

Runs against the SQLite-backed ``client`` fixture with Redis mocked and the
background search patched out.
"""

from __future__ import annotations

import pytest
from httpx import AsyncClient

API = "/api/v1"


def _ride_body(requester_id: int, **overrides) -> dict:
    body = {
        "requester_id": requester_id,
        "pickup_address": "Colon St, Cebu City",
        "dropoff_address": "Ayala Center Cebu",
        "pickup_lat": 10.2966,
        "pickup_lng": 123.9020,
        "dropoff_lat": 10.3181,
        "dropoff_lng": 123.9050,
        "vehicle_type": "TRICYCLE",
        "base_fare": 80.0,
    }
    body.update(overrides)
    return body


async def _create_ride(client: AsyncClient, seed) -> dict:
    requester = await seed.requester()
    resp = await client.post(f"{API}/rides", json=_ride_body(requester.id))
    assert resp.status_code == 202
    return resp.json()


# ── Health ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get(f"{API}/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


# ── Jobs ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_ride_returns_202(client: AsyncClient, seed):
    from kangga.workers import beaming

    data = await _create_ride(client, seed)
    assert data["status"] == "requested"
    assert data["kind"] == "ride"
    assert data["total_fare"] == 80.0
    assert data["version"] == 1
    beaming.schedule_beaming.assert_called_once_with(data["id"])


@pytest.mark.asyncio
async def test_create_delivery_without_search(client: AsyncClient, seed):
    from kangga.workers import beaming

    requester = await seed.requester()
    resp = await client.post(
        f"{API}/deliveries",
        json={
            "requester_id": requester.id,
            "pickup_address": "IT Park, Lahug",
            "dropoff_address": "SM Seaside",
            "package_description": "Laptop charger",
            "package_size": "small",
            "receiver_name": "Leo Tan",
            "receiver_phone": "+639171234567",
            "base_fare": 60.0,
            "start_search": False,
        },
    )
    assert resp.status_code == 202
    data = resp.json()
    assert data["kind"] == "delivery"
    assert data["receiver_name"] == "Leo Tan"
    beaming.schedule_beaming.assert_not_called()

    resp = await client.get(f"{API}/deliveries/open")
    assert [j["id"] for j in resp.json()] == [data["id"]]


@pytest.mark.asyncio
async def test_create_ride_validates_coordinates(client: AsyncClient, seed):
    requester = await seed.requester()
    resp = await client.post(
        f"{API}/rides", json=_ride_body(requester.id, pickup_lat=123.0)
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_job(client: AsyncClient, seed):
    created = await _create_ride(client, seed)
    resp = await client.get(f"{API}/jobs/{created['id']}")
    assert resp.status_code == 200
    assert resp.json()["id"] == created["id"]


@pytest.mark.asyncio
async def test_get_job_not_found(client: AsyncClient):
    resp = await client.get(f"{API}/jobs/9999")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Job 9999 not found"


@pytest.mark.asyncio
async def test_list_jobs_needs_exactly_one_filter(client: AsyncClient, seed):
    created = await _create_ride(client, seed)

    resp = await client.get(f"{API}/jobs")
    assert resp.status_code == 422

    resp = await client.get(
        f"{API}/jobs", params={"requester_id": created["requester_id"]}
    )
    assert [j["id"] for j in resp.json()] == [created["id"]]


@pytest.mark.asyncio
async def test_second_accept_conflicts(client: AsyncClient, seed):
    first = await seed.assignee()
    second = await seed.assignee(full_name="Liza Manalo")
    job = await _create_ride(client, seed)

    resp = await client.post(
        f"{API}/jobs/{job['id']}/accept", json={"assignee_id": first.id}
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "accepted"
    assert data["assignee_id"] == first.id
    assert data["platform_fee_charged"] is True

    resp = await client.post(
        f"{API}/jobs/{job['id']}/accept", json={"assignee_id": second.id}
    )
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Job is no longer available"

    resp = await client.get(f"{API}/wallets/{first.user_id}")
    assert resp.json()["balance"] == 95.0


@pytest.mark.asyncio
async def test_status_flow_and_illegal_jump(client: AsyncClient, seed):
    driver = await seed.assignee()
    job = await _create_ride(client, seed)
    url = f"{API}/jobs/{job['id']}"

    resp = await client.patch(f"{url}/status", json={"status": "completed"})
    assert resp.status_code == 409

    await client.post(f"{url}/accept", json={"assignee_id": driver.id})
    resp = await client.patch(f"{url}/status", json={"status": "completed"})
    assert resp.status_code == 409

    resp = await client.patch(f"{url}/status", json={"status": "in_progress"})
    assert resp.status_code == 200
    assert resp.json()["started_at"] is not None

    resp = await client.patch(f"{url}/status", json={"status": "completed"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "completed"


@pytest.mark.asyncio
async def test_cancel_requires_reason(client: AsyncClient, seed):
    job = await _create_ride(client, seed)
    url = f"{API}/jobs/{job['id']}/cancel"

    resp = await client.post(url, json={})
    assert resp.status_code == 422

    resp = await client.post(
        url, json={"reason": "cancelled_by_passenger_before_accept"}
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["job"]["status"] == "cancelled"
    assert body["refund"] is None

    resp = await client.post(url, json={"reason": "cancelled_by_system"})
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_no_show_refunds_fee(client: AsyncClient, seed):
    driver = await seed.assignee()
    job = await _create_ride(client, seed)
    url = f"{API}/jobs/{job['id']}"

    await client.post(f"{url}/accept", json={"assignee_id": driver.id})
    resp = await client.post(
        f"{url}/cancel", json={"reason": "timed_out_driver_no_show"}
    )
    assert resp.status_code == 200
    assert resp.json()["refund"]["refunded"] is True

    resp = await client.get(f"{API}/wallets/{driver.user_id}")
    assert resp.json()["balance"] == 100.0


@pytest.mark.asyncio
async def test_search_endpoint(client: AsyncClient, seed):
    job = await _create_ride(client, seed)
    resp = await client.post(f"{API}/jobs/{job['id']}/search")
    assert resp.status_code == 202
    assert resp.json() == {"job_id": job["id"], "scheduled": True}

    resp = await client.post(f"{API}/jobs/9999/search")
    assert resp.status_code == 404


# ── Proposals & negotiation ───────────────────────────────────────────


@pytest.mark.asyncio
async def test_proposal_flow(client: AsyncClient, seed):
    driver = await seed.assignee()
    job = await _create_ride(client, seed)
    url = f"{API}/jobs/{job['id']}/proposals"

    resp = await client.post(
        url, json={"assignee_id": driver.id, "top_up_fare": 20.0, "notes": "Near Colon"}
    )
    assert resp.status_code == 201
    assert resp.json()["total_fare"] == 100.0

    resp = await client.get(url)
    assert [p["assignee_id"] for p in resp.json()] == [driver.id]

    resp = await client.post(f"{url}/{driver.id}/accept", json={})
    assert resp.status_code == 200
    assert resp.json()["status"] == "accepted"
    assert resp.json()["total_fare"] == 100.0

    resp = await client.get(url)
    assert resp.json() == []


@pytest.mark.asyncio
async def test_counter_offer_flow(client: AsyncClient, seed):
    driver = await seed.assignee()
    job = await _create_ride(client, seed)
    url = f"{API}/jobs/{job['id']}/negotiation"

    resp = await client.post(
        url, json={"assignee_id": driver.id, "proposed_top_up_fare": 50.0}
    )
    assert resp.status_code == 200
    assert resp.json()["negotiation_status"] == "pending"

    resp = await client.post(f"{url}/accept", json={})
    assert resp.status_code == 200
    assert resp.json()["total_fare"] == 130.0

    resp = await client.post(f"{url}/reject")
    assert resp.status_code == 409


# ── Wallets ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_wallet_open_load_and_list(client: AsyncClient, seed):
    user = await seed.requester(full_name="Jun Abella")

    resp = await client.post(f"{API}/wallets", json={"user_id": user.id, "role": "courier"})
    assert resp.status_code == 201
    assert resp.json()["balance"] == 0.0
    assert resp.json()["account_number"].startswith("KXC-")

    resp = await client.post(
        f"{API}/wallets/{user.id}/transactions",
        json={"amount": 150.0, "type": "load", "reference": "GCash top-up"},
    )
    assert resp.status_code == 201
    assert resp.json() == {"user_id": user.id, "balance": 150.0}

    resp = await client.post(
        f"{API}/wallets/{user.id}/transactions", json={"amount": 10.0, "type": "deduct"}
    )
    assert resp.status_code == 422

    resp = await client.get(f"{API}/wallets/{user.id}/transactions")
    assert [t["amount"] for t in resp.json()] == [150.0]

    resp = await client.get(f"{API}/admin/wallets/{user.id}/reconcile")
    assert resp.json()["balanced"] is True


@pytest.mark.asyncio
async def test_unknown_wallet(client: AsyncClient):
    resp = await client.get(f"{API}/wallets/9999")
    assert resp.status_code == 404


# ── Fares ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_fare_estimate(client: AsyncClient, seed):
    await seed.fare_config("CAR")
    resp = await client.post(
        f"{API}/fares/estimate",
        json={"service_type": "CAR", "distance_km": 3, "time_min": 10},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["subtotal"] == 96.0
    assert data["platform_fee"] == 5.0
    assert data["driver_take"] == 91.0
    assert data["eta"]["duration_minutes"] == 6


@pytest.mark.asyncio
async def test_fare_config_missing(client: AsyncClient):
    resp = await client.get(f"{API}/fares/MOTORCYCLE")
    assert resp.status_code == 404


# ── Assignees ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_location_update_and_eta(client: AsyncClient, seed, redis_mock):
    driver = await seed.assignee()
    url = f"{API}/assignees/{driver.id}"

    resp = await client.get(f"{url}/eta", params={"lat": 10.3, "lng": 123.9})
    assert resp.status_code == 409

    resp = await client.put(f"{url}/location", json={"lat": 10.3157, "lng": 123.8854})
    assert resp.status_code == 200
    assert resp.json()["h3_cell"] is not None
    redis_mock.publish.assert_awaited()

    resp = await client.get(f"{url}/eta", params={"lat": 10.3157, "lng": 123.8854})
    assert resp.status_code == 200
    assert resp.json()["duration_minutes"] == 0


@pytest.mark.asyncio
async def test_rejecting_counter_offer_restarts_search(client: AsyncClient, seed):
    from kangga.workers import beaming

    driver = await seed.assignee()
    job = await _create_ride(client, seed)
    url = f"{API}/jobs/{job['id']}/negotiation"
    await client.post(url, json={"assignee_id": driver.id, "proposed_top_up_fare": 40.0})
    beaming.schedule_beaming.reset_mock()

    resp = await client.post(f"{url}/reject")
    assert resp.status_code == 200
    assert resp.json()["assignee_id"] is None
    beaming.schedule_beaming.assert_called_once_with(job["id"])
