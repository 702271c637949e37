"""
Billing Service (Domain Logic).

Computes load financials, finalizes them on delivery and records the
simulated advance/balance payments. Callers own the transaction.
"""

import random
from datetime import datetime, timezone
from typing import NamedTuple

from roadhive.app.models.load import Load
from roadhive.app.models.load_enums import PaymentStatus

PLATFORM_FEE_RATE = 0.075  # of freight + insurance
SGST_RATE = 0.09  # of the platform fee
CGST_RATE = 0.09  # of the platform fee
ADVANCE_RATE = 0.30  # of the total


class LoadFinancials(NamedTuple):
    platform_fee: float
    tax_total: float
    total_amount: float


def calculate_financials(price: float, insurance_premium: float = 0.0) -> LoadFinancials:
    """
    Calculate the platform fee, taxes and total for a load.

    Args:
        price: Agreed freight amount
        insurance_premium: Optional insurance premium

    Returns:
        LoadFinancials rounded to 2 decimal places
    """
    subtotal = (price or 0.0) + (insurance_premium or 0.0)
    platform_fee = subtotal * PLATFORM_FEE_RATE
    tax_total = platform_fee * SGST_RATE + platform_fee * CGST_RATE
    total_amount = subtotal + platform_fee + tax_total
    return LoadFinancials(
        platform_fee=round(platform_fee, 2),
        tax_total=round(tax_total, 2),
        total_amount=round(total_amount, 2),
    )


class BillingService:

    @staticmethod
    def lock_totals(load: Load) -> LoadFinancials:
        """Write the computed totals onto the load."""
        financials = calculate_financials(load.price, load.insurance_premium)
        load.platform_fee = financials.platform_fee
        load.tax_total = financials.tax_total
        load.total_amount = financials.total_amount
        return financials

    @staticmethod
    def completion_values(load: Load, now: datetime = None) -> dict:
        """
        Column values that finalize financials when delivery is verified.

        Totals are recomputed from the agreed price and an invoice number
        is issued once.
        """
        now = now or datetime.now(timezone.utc)
        financials = calculate_financials(load.price, load.insurance_premium)
        return {
            "platform_fee": financials.platform_fee,
            "tax_total": financials.tax_total,
            "total_amount": financials.total_amount,
            "invoice_number": load.invoice_number or f"INV-{now.year}-{random.randint(1000, 9999)}",
            "invoice_date": now,
        }

    @staticmethod
    def pay_advance(load: Load) -> Load:
        """Record the 30% advance and lock the totals it was computed from."""
        financials = BillingService.lock_totals(load)
        load.advance_amount = round(financials.total_amount * ADVANCE_RATE, 2)
        load.payment_status = PaymentStatus.ADVANCE_PAID
        return load

    @staticmethod
    def pay_balance(load: Load) -> Load:
        """Record the remaining balance (total minus any advance)."""
        if load.total_amount is None:
            BillingService.lock_totals(load)
        advance = load.advance_amount or 0.0
        load.balance_amount = round(load.total_amount - advance, 2)
        load.payment_status = PaymentStatus.FULLY_PAID
        return load
