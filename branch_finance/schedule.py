"""
Schedule Generator

Builds the flat-interest installment schedule of an obligation. Capital and
total interest are split evenly across installments; the rounding residual of
both is absorbed by the final installment so the schedule sums exactly.
"""

from decimal import Decimal, InvalidOperation, ROUND_DOWN
from datetime import datetime, timezone, date
from typing import List, Optional
import calendar
import uuid

from .currency import Money
from .exceptions import ValidationError
from .models import Installment, InstallmentStatus


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, clamping to the last day of shorter months"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _split_down(total: Money, count: int) -> Money:
    """Even share of total, truncated to the currency precision"""
    share = (total.amount / Decimal(count)).quantize(total.currency.quantum, rounding=ROUND_DOWN)
    return Money(share, total.currency)


def validate_parameters(
    principal: Money,
    down_payment: Money,
    rate_percent_total: Decimal,
    count: int,
    already_paid_count: int = 0
) -> None:
    """
    Reject schedule parameters before anything is generated or written

    Raises:
        ValidationError: describing the first offending parameter
    """
    if count <= 0:
        raise ValidationError("Installment count must be positive")
    if not principal.is_positive():
        raise ValidationError("Principal amount must be positive")
    if down_payment.currency != principal.currency:
        raise ValidationError("Down payment currency must match principal currency")
    if down_payment.is_negative():
        raise ValidationError("Down payment cannot be negative")
    if down_payment > principal:
        raise ValidationError("Down payment cannot exceed the principal amount")
    if down_payment == principal:
        raise ValidationError("Down payment leaves nothing to finance")
    if rate_percent_total < 0:
        raise ValidationError("Interest rate cannot be negative")
    if already_paid_count < 0:
        raise ValidationError("Already paid installment count cannot be negative")
    if already_paid_count >= count:
        raise ValidationError("Already paid installment count must be lower than the installment count")


def generate_schedule(
    principal: Money,
    down_payment: Money,
    rate_percent_total: Decimal,
    count: int,
    start_date: date,
    already_paid_count: int = 0,
    obligation_id: str = "",
    now: Optional[datetime] = None
) -> List[Installment]:
    """
    Generate the installment schedule for an obligation

    Args:
        principal: Total principal of the obligation
        down_payment: Amount paid up front, not financed
        rate_percent_total: Flat interest over the whole term, e.g. 10 for 10%
        count: Number of installments
        start_date: Obligation start; the first installment falls due one month later
        already_paid_count: Leading installments to create as already paid
            (back-filled history, no ledger postings are ever produced for them)
        obligation_id: Owner of the generated installments
        now: Creation timestamp, defaults to the current UTC time

    Returns:
        Installments numbered 1..count in due-date order

    Raises:
        ValidationError: If the parameters cannot produce a valid schedule
    """
    validate_parameters(principal, down_payment, rate_percent_total, count, already_paid_count)

    now = now or datetime.now(timezone.utc)
    currency = principal.currency

    financed = principal - down_payment
    try:
        total_interest = financed * (rate_percent_total / Decimal('100'))
    except InvalidOperation:
        raise ValidationError(
            f"Interest rate {rate_percent_total}% on {financed.to_string()} is out of range"
        )

    capital_per_installment = _split_down(financed, count)
    interest_per_installment = _split_down(total_interest, count)

    # Shares are truncated, so the last installment's leftover is never negative
    last_capital = financed - capital_per_installment * Decimal(count - 1)
    last_interest = total_interest - interest_per_installment * Decimal(count - 1)

    if capital_per_installment.is_zero():
        raise ValidationError(
            f"Financed amount {financed.to_string()} is too small for {count} installments"
        )

    schedule = []
    for index in range(count):
        is_last = index == count - 1
        capital = last_capital if is_last else capital_per_installment
        interest = last_interest if is_last else interest_per_installment

        installment = Installment(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            obligation_id=obligation_id,
            installment_number=index + 1,
            due_date=add_months(start_date, index + 1),
            capital_amount=capital,
            interest_amount=interest,
            paid_amount=Money.zero(currency),
            status=InstallmentStatus.PENDING
        )

        if index < already_paid_count:
            installment.paid_amount = installment.total_amount
            installment.status = InstallmentStatus.PAID
            installment.paid_at = now

        schedule.append(installment)

    return schedule
