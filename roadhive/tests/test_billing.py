"""
Load financials and simulated payments.
"""

import re
from datetime import datetime, timezone

import pytest

from roadhive.app.domain.billing.billing_service import BillingService, calculate_financials
from roadhive.app.models.load import Load
from roadhive.app.models.load_enums import LoadStatus, PaymentStatus
from roadhive.tests.factories import auth


def test_financials_breakdown():
    """Fee is 7.5% of freight + insurance, taxes 9% + 9% of the fee."""
    financials = calculate_financials(50000.0, 2000.0)

    assert financials.platform_fee == 3900.0
    assert financials.tax_total == 702.0
    assert financials.total_amount == 56602.0


def test_financials_without_insurance():
    financials = calculate_financials(10000.0)

    assert financials.platform_fee == 750.0
    assert financials.tax_total == 135.0
    assert financials.total_amount == 10885.0


def test_advance_then_balance():
    load = Load(price=50000.0, insurance_premium=2000.0, payment_status=PaymentStatus.PENDING)

    BillingService.pay_advance(load)
    assert load.payment_status == PaymentStatus.ADVANCE_PAID
    assert load.total_amount == 56602.0
    assert load.advance_amount == pytest.approx(16980.6)

    BillingService.pay_balance(load)
    assert load.payment_status == PaymentStatus.FULLY_PAID
    assert load.balance_amount == pytest.approx(56602.0 - 16980.6)


def test_balance_without_advance_is_the_total():
    load = Load(price=10000.0, insurance_premium=0.0, payment_status=PaymentStatus.PENDING)

    BillingService.pay_balance(load)

    assert load.balance_amount == 10885.0


def test_completion_issues_invoice_once():
    now = datetime(2026, 3, 1, tzinfo=timezone.utc)
    load = Load(price=10000.0, insurance_premium=0.0)

    values = BillingService.completion_values(load, now)
    assert re.fullmatch(r"INV-2026-\d{4}", values["invoice_number"])
    assert values["total_amount"] == 10885.0
    assert values["invoice_date"] == now

    load.invoice_number = "INV-2025-0001"
    assert BillingService.completion_values(load, now)["invoice_number"] == "INV-2025-0001"


@pytest.mark.asyncio
async def test_advance_payment_endpoint(client, assigned_load, shipper_token):
    response = await client.post(f"/v1/loads/{assigned_load['id']}/pay-advance", headers=auth(shipper_token))

    assert response.status_code == 200
    load = response.json()["load"]
    assert load["payment_status"] == PaymentStatus.ADVANCE_PAID.value
    # Bid amount replaced the posted price
    assert load["total_amount"] == calculate_financials(48000.0, 2000.0).total_amount

    again = await client.post(f"/v1/loads/{assigned_load['id']}/pay-advance", headers=auth(shipper_token))
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_advance_requires_an_assigned_load(client, posted_load, shipper_token):
    response = await client.post(f"/v1/loads/{posted_load['id']}/pay-advance", headers=auth(shipper_token))

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_CONFLICT"


@pytest.mark.asyncio
async def test_balance_requires_delivery(client, in_transit_load, shipper_token):
    response = await client.post(f"/v1/loads/{in_transit_load['id']}/pay-balance", headers=auth(shipper_token))

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_only_the_owning_shipper_pays(client, assigned_load, other_shipper_token, transporter_token):
    # Other tenants cannot even see the load
    response = await client.post(f"/v1/loads/{assigned_load['id']}/pay-advance", headers=auth(other_shipper_token))
    assert response.status_code == 404

    response = await client.post(f"/v1/loads/{assigned_load['id']}/pay-advance", headers=auth(transporter_token))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_super_admin_may_pay_for_any_tenant(client, assigned_load, super_admin_token):
    response = await client.post(f"/v1/loads/{assigned_load['id']}/pay-advance", headers=auth(super_admin_token))

    assert response.status_code == 200
    assert response.json()["load"]["status"] == LoadStatus.ASSIGNED.value
