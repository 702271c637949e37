"""
Load API: posting, visibility, bidding and driver trip execution.
"""

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from roadhive.app.api.v1.endpoints.loads import place_bid
from roadhive.app.core.jwt import create_access_token
from roadhive.app.models.audit_log import AuditLog
from roadhive.app.models.bid import Bid
from roadhive.app.models.load import Load
from roadhive.app.models.load_enums import LoadStatus
from roadhive.app.schemas.load import BidCreate
from roadhive.app.services.audit import AuditAction, get_load_audit_trail
from roadhive.tests.factories import DRIVER, DELHI, MUMBAI, TRANSPORTER, auth, load_payload


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Correlation-ID" in response.headers


@pytest.mark.asyncio
async def test_requests_without_token_are_rejected(client):
    response = await client.get("/v1/loads")

    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_token_without_tenant_is_rejected(client):
    token = create_access_token(data={"sub": "x", "user_id": "u-1", "role": "SHIPPER"})

    response = await client.get("/v1/loads", headers=auth(token))

    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_UNAUTHORIZED"


@pytest.mark.asyncio
async def test_shipper_posts_a_load(client, shipper_token, db_session):
    response = await client.post("/v1/loads", json=load_payload(receiver_email="Receiver@RoadHive.in"), headers=auth(shipper_token))

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "Active"
    assert data["tenant_id"] == "t-shipper"
    assert data["load_number"].startswith("L-")
    assert data["receiver_email"] == "receiver@roadhive.in"
    assert data["pickup_coordinates"]["lat"] == MUMBAI["lat"]
    assert data["current_location"] is None
    assert "delivery_auth_code" not in data

    trail = await get_load_audit_trail(db_session, data["id"])
    assert [entry.action for entry in trail] == [AuditAction.LOAD_CREATED]


@pytest.mark.asyncio
async def test_audit_entries_carry_the_correlation_id(client, shipper_token, db_session):
    headers = {**auth(shipper_token), "X-Correlation-ID": "req-load-42"}

    response = await client.post("/v1/loads", json=load_payload(), headers=headers)

    assert response.headers["X-Correlation-ID"] == "req-load-42"
    trail = await get_load_audit_trail(db_session, response.json()["id"])
    assert trail[0].meta_data["correlation_id"] == "req-load-42"


@pytest.mark.asyncio
async def test_driver_cannot_post_loads(client, driver_token):
    response = await client.post("/v1/loads", json=load_payload(), headers=auth(driver_token))

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_invalid_coordinates_are_rejected(client, shipper_token):
    response = await client.post(
        "/v1/loads",
        json=load_payload(pickup_coordinates={"lat": 95.0, "lng": 72.0}),
        headers=auth(shipper_token),
    )

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_visibility_by_role(
    client, posted_load, shipper_token, other_shipper_token, transporter_token,
    driver_token, receiver_token, super_admin_token,
):
    async def visible(token):
        response = await client.get("/v1/loads", headers=auth(token))
        assert response.status_code == 200
        return [load["id"] for load in response.json()]

    load_id = posted_load["id"]
    assert await visible(shipper_token) == [load_id]
    assert await visible(other_shipper_token) == []
    # Open marketplace
    assert await visible(transporter_token) == [load_id]
    # Not yet assigned
    assert await visible(driver_token) == []
    assert await visible(receiver_token) == [load_id]
    assert await visible(super_admin_token) == [load_id]

    response = await client.get(f"/v1/loads/{load_id}", headers=auth(other_shipper_token))
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND"


@pytest.mark.asyncio
async def test_bid_assigns_transporter_and_driver(client, posted_load, transporter_token, driver_token, db_session):
    response = await client.post(
        f"/v1/loads/{posted_load['id']}/bids",
        json={"amount": 48000.0, "driver_id": DRIVER["user_id"]},
        headers=auth(transporter_token),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "Assigned"
    assert data["assigned_transporter_id"] == TRANSPORTER["tenant_id"]
    assert data["assigned_driver_id"] == DRIVER["user_id"]
    assert data["price"] == 48000.0

    # The driver now sees it
    listed = await client.get("/v1/loads", headers=auth(driver_token))
    assert [load["id"] for load in listed.json()] == [posted_load["id"]]

    # No longer open for bids
    again = await client.post(
        f"/v1/loads/{posted_load['id']}/bids",
        json={"amount": 45000.0},
        headers=auth(transporter_token),
    )
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_bid_without_driver_assigns_the_bidder(client, posted_load, transporter_token):
    response = await client.post(
        f"/v1/loads/{posted_load['id']}/bids",
        json={"amount": 47000.0},
        headers=auth(transporter_token),
    )

    assert response.json()["assigned_driver_id"] == TRANSPORTER["user_id"]


@pytest.mark.asyncio
async def test_bid_on_a_stale_copy_loses_to_the_first(client, posted_load, transporter_token, session_factory, db_session):
    load_id = posted_load["id"]
    dispatcher = {**TRANSPORTER, "user_id": "u-dispatcher", "sub": "dispatch@roadhive.in"}
    stale_db = session_factory()
    try:
        stale = await stale_db.get(Load, load_id)
        assert stale.status == LoadStatus.ACTIVE

        first = await client.post(
            f"/v1/loads/{load_id}/bids",
            json={"amount": 48000.0, "driver_id": DRIVER["user_id"]},
            headers=auth(transporter_token),
        )
        assert first.status_code == 200

        with pytest.raises(HTTPException) as excinfo:
            await place_bid(
                load_id=load_id,
                bid_data=BidCreate(amount=40000.0, driver_id="u-driver-2"),
                current_user=dispatcher,
                db=stale_db,
            )
        assert excinfo.value.status_code == 409
    finally:
        await stale_db.close()

    load = await db_session.get(Load, load_id, populate_existing=True)
    assert load.assigned_driver_id == DRIVER["user_id"]
    assert load.price == 48000.0
    assert load.last_updated is not None
    bids = (await db_session.execute(select(Bid.amount).where(Bid.load_id == load_id))).scalars().all()
    assert bids == [48000.0]


@pytest.mark.asyncio
async def test_shipper_cannot_bid(client, posted_load, shipper_token):
    response = await client.post(
        f"/v1/loads/{posted_load['id']}/bids",
        json={"amount": 47000.0},
        headers=auth(shipper_token),
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_driver_runs_the_lifecycle(client, assigned_load, driver_token, db_session):
    load_id = assigned_load["id"]

    async def move(status):
        return await client.patch(f"/v1/loads/{load_id}/status", json={"status": status}, headers=auth(driver_token))

    started = await move("In Transit")
    assert started.status_code == 200
    started_at = started.json()["started_at"]
    assert started_at is not None
    assert started.json()["last_updated"] is not None

    assert (await move("Paused")).json()["status"] == "Paused"

    resumed = await move("In Transit")
    assert resumed.json()["status"] == "In Transit"
    # Resuming keeps the original start time
    assert resumed.json()["started_at"] == started_at

    reached = await move("Reached")
    assert reached.json()["status"] == "Reached"
    assert reached.json()["reached_at"] is not None

    trail = await get_load_audit_trail(db_session, load_id)
    actions = [entry.action for entry in reversed(trail)]
    assert actions[-4:] == [
        AuditAction.TRIP_STARTED,
        AuditAction.TRIP_PAUSED,
        AuditAction.TRIP_RESUMED,
        AuditAction.TRIP_REACHED,
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize("target", ["Reached", "Paused", "Assigned", "Cancelled"])
async def test_assigned_load_cannot_skip_ahead(client, assigned_load, driver_token, target):
    response = await client.patch(
        f"/v1/loads/{assigned_load['id']}/status",
        json={"status": target},
        headers=auth(driver_token),
    )

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_TRIP_TRANSITION"


@pytest.mark.asyncio
async def test_completed_requires_otp(client, reached_load, driver_token):
    response = await client.patch(
        f"/v1/loads/{reached_load['id']}/status",
        json={"status": "Completed"},
        headers=auth(driver_token),
    )

    assert response.status_code == 400
    assert "OTP" in response.json()["message"]


@pytest.mark.asyncio
async def test_only_the_assigned_driver_advances(client, assigned_load, other_driver_token, transporter_token):
    for token in (other_driver_token, transporter_token):
        response = await client.patch(
            f"/v1/loads/{assigned_load['id']}/status",
            json={"status": "In Transit"},
            headers=auth(token),
        )
        # The other driver cannot see the load at all; the transporter can but is not the driver
        assert response.status_code in (403, 404)


@pytest.mark.asyncio
async def test_unknown_status_is_a_validation_error(client, assigned_load, driver_token):
    response = await client.patch(
        f"/v1/loads/{assigned_load['id']}/status",
        json={"status": "Teleported"},
        headers=auth(driver_token),
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_location_updates_current_position_and_history(client, in_transit_load, driver_token, shipper_token):
    load_id = in_transit_load["id"]
    fixes = [
        {"lat": 19.10, "lng": 72.90, "heading": 45.0, "speed": 15.0, "timestamp": "2026-01-01T10:00:00Z"},
        {"lat": 19.20, "lng": 72.95, "heading": 40.0, "speed": 18.0, "timestamp": "2026-01-01T10:05:00Z"},
    ]
    for fix in fixes:
        response = await client.post(f"/v1/loads/{load_id}/location", json=fix, headers=auth(driver_token))
        assert response.status_code == 200
        assert response.json()["recorded"] is True

    load = (await client.get(f"/v1/loads/{load_id}", headers=auth(shipper_token))).json()
    assert load["current_location"]["lat"] == 19.20
    assert load["current_location"]["speed"] == 18.0
    assert load["distance_travelled_km"] > 10

    history = (await client.get(f"/v1/loads/{load_id}/history", headers=auth(shipper_token))).json()
    assert [(p["lat"], p["lng"]) for p in history] == [(19.10, 72.90), (19.20, 72.95)]


@pytest.mark.asyncio
async def test_history_is_ordered_by_capture_time(client, in_transit_load, driver_token):
    load_id = in_transit_load["id"]
    late = {"lat": 19.30, "lng": 73.00, "timestamp": "2026-01-01T11:00:00Z"}
    early = {"lat": 19.25, "lng": 72.98, "timestamp": "2026-01-01T10:30:00Z"}
    for fix in (late, early):
        await client.post(f"/v1/loads/{load_id}/location", json=fix, headers=auth(driver_token))

    history = (await client.get(f"/v1/loads/{load_id}/history", headers=auth(driver_token))).json()

    assert [p["lat"] for p in history] == [19.25, 19.30]


@pytest.mark.asyncio
async def test_location_rejected_unless_in_transit(client, assigned_load, driver_token):
    response = await client.post(
        f"/v1/loads/{assigned_load['id']}/location",
        json=DELHI,
        headers=auth(driver_token),
    )

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_TRIP_NOT_TRACKABLE"


@pytest.mark.asyncio
async def test_location_rejected_while_paused(client, in_transit_load, driver_token):
    load_id = in_transit_load["id"]
    await client.patch(f"/v1/loads/{load_id}/status", json={"status": "Paused"}, headers=auth(driver_token))

    response = await client.post(f"/v1/loads/{load_id}/location", json=DELHI, headers=auth(driver_token))

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_location_from_other_driver_is_rejected(client, in_transit_load, other_driver_token):
    response = await client.post(
        f"/v1/loads/{in_transit_load['id']}/location",
        json=DELHI,
        headers=auth(other_driver_token),
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_location_fixes_are_not_audited(client, in_transit_load, driver_token, db_session):
    await client.post(f"/v1/loads/{in_transit_load['id']}/location", json=DELHI, headers=auth(driver_token))

    result = await db_session.execute(select(AuditLog.action).where(AuditLog.load_id == in_transit_load["id"]))

    assert set(result.scalars().all()) == {AuditAction.LOAD_CREATED, AuditAction.BID_PLACED, AuditAction.TRIP_STARTED}
