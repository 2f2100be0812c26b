"""End-of-month balances for members and guests.

Two cutoffs are in play and must not be mixed: activity totals use only the
transactions dated inside the month, while the end-of-month balance uses every
transaction dated on or before the last day of the month.

A member's standing monthly obligations (plan fee, membership charges,
recurring payments) count as still owed for the month unless a charge whose
description names a recurring charge was already posted in that month.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence, Union

from models import ObligationKind, TransactionType
from periods import Period, month_period
from schemas import RecurringObligation, TransactionRecord

RECURRING_CHARGE_LABELS = (
    "monthly membership",
    "additional monthly payment",
    "balance payoff plan",
)

ZERO = Decimal("0")

MonthLike = Union[str, date, Period]
TransactionLike = Union[TransactionRecord, dict[str, Any]]


@dataclass(frozen=True)
class PeriodTotals:
    charges_total: Decimal
    payments_total: Decimal


@dataclass(frozen=True)
class PeriodSnapshot:
    period_start: date
    period_end: date
    charges_total: Decimal
    payments_total: Decimal
    projected_balance: Decimal
    missing_monthly: Decimal
    transactions: list[TransactionRecord] = field(default_factory=list)


def to_records(transactions: Iterable[TransactionLike]) -> list[TransactionRecord]:
    return [
        t if isinstance(t, TransactionRecord) else TransactionRecord.model_validate(t)
        for t in transactions
    ]


def is_recurring_charge_description(description: Optional[str]) -> bool:
    value = str(description or "").lower()
    return any(label in value for label in RECURRING_CHARGE_LABELS)


def _sum_type(records: Iterable[TransactionRecord], txn_type: TransactionType) -> Decimal:
    return sum((t.amount for t in records if t.type == txn_type.value), ZERO)


def _owned(
    records: Iterable[TransactionRecord], owner_id: str, owner_key: str
) -> list[TransactionRecord]:
    owner_id = str(owner_id)
    return [t for t in records if t.date is not None and t.owner(owner_key) == owner_id]


def transactions_in_month(
    owner_id: str,
    month: MonthLike,
    transactions: Iterable[TransactionLike],
    owner_key: str = "member_id",
) -> list[TransactionRecord]:
    period = month_period(month)
    return [
        t
        for t in _owned(to_records(transactions), owner_id, owner_key)
        if period.contains(t.date)
    ]


def transactions_up_to_month(
    owner_id: str,
    month: MonthLike,
    transactions: Iterable[TransactionLike],
    owner_key: str = "member_id",
) -> list[TransactionRecord]:
    period = month_period(month)
    return [
        t
        for t in _owned(to_records(transactions), owner_id, owner_key)
        if t.date <= period.end
    ]


def period_totals(
    owner_id: str,
    month: MonthLike,
    transactions: Iterable[TransactionLike],
    owner_key: str = "member_id",
) -> PeriodTotals:
    in_month = transactions_in_month(owner_id, month, transactions, owner_key)
    return PeriodTotals(
        charges_total=_sum_type(in_month, TransactionType.charge),
        payments_total=_sum_type(in_month, TransactionType.payment),
    )


def total_monthly_obligation(
    owner_id: str, obligations: Iterable[RecurringObligation]
) -> Decimal:
    owner_id = str(owner_id)
    return sum(
        (o.amount_per_month for o in obligations if o.is_active and o.owner_id == owner_id),
        ZERO,
    )


def posted_recurring_in_month(
    owner_id: str,
    month: MonthLike,
    transactions: Iterable[TransactionLike],
    owner_key: str = "member_id",
) -> Decimal:
    in_month = transactions_in_month(owner_id, month, transactions, owner_key)
    return sum(
        (
            t.amount
            for t in in_month
            if t.type == TransactionType.charge.value
            and is_recurring_charge_description(t.description)
        ),
        ZERO,
    )


def missing_monthly(
    owner_id: str,
    month: MonthLike,
    transactions: Iterable[TransactionLike],
    obligations: Iterable[RecurringObligation],
    owner_key: str = "member_id",
) -> Decimal:
    owed = total_monthly_obligation(owner_id, obligations)
    posted = posted_recurring_in_month(owner_id, month, transactions, owner_key)
    return max(ZERO, owed - posted)


def projected_balance(
    owner_id: str,
    month: MonthLike,
    transactions: Iterable[TransactionLike],
    obligations: Iterable[RecurringObligation] = (),
    owner_key: str = "member_id",
) -> Decimal:
    return period_snapshot(
        owner_id, month, transactions, obligations, owner_key
    ).projected_balance


def period_snapshot(
    owner_id: str,
    month: MonthLike,
    transactions: Iterable[TransactionLike],
    obligations: Iterable[RecurringObligation] = (),
    owner_key: str = "member_id",
) -> PeriodSnapshot:
    period = month_period(month)
    records = to_records(transactions)
    obligations = list(obligations)

    in_month = transactions_in_month(owner_id, period, records, owner_key)
    up_to_month = transactions_up_to_month(owner_id, period, records, owner_key)

    total_charges = _sum_type(up_to_month, TransactionType.charge)
    total_payments = _sum_type(up_to_month, TransactionType.payment)
    missing = missing_monthly(owner_id, period, in_month, obligations, owner_key)

    return PeriodSnapshot(
        period_start=period.start,
        period_end=period.end,
        charges_total=_sum_type(in_month, TransactionType.charge),
        payments_total=_sum_type(in_month, TransactionType.payment),
        projected_balance=total_charges - total_payments + missing,
        missing_monthly=missing,
        transactions=in_month,
    )


def _amount(value: Any) -> Decimal:
    if value is None or value == "":
        return ZERO
    try:
        amount = Decimal(str(value))
    except ArithmeticError:
        return ZERO
    return amount if amount.is_finite() else ZERO


def member_obligations(
    member_id: str,
    plan: Optional[dict[str, Any]],
    membership_charges: Sequence[dict[str, Any]],
    recurring_payments: Sequence[dict[str, Any]],
) -> list[RecurringObligation]:
    member_id = str(member_id)
    obligations: list[RecurringObligation] = []

    standard_amount = _amount((plan or {}).get("standard_amount"))
    if standard_amount > 0:
        obligations.append(
            RecurringObligation(
                owner_id=member_id,
                amount_per_month=standard_amount,
                kind=ObligationKind.standard_plan,
            )
        )

    for charge in membership_charges:
        if str(charge.get("member_id")) != member_id or not charge.get("is_active"):
            continue
        obligations.append(
            RecurringObligation(
                owner_id=member_id,
                amount_per_month=max(ZERO, _amount(charge.get("amount"))),
                kind=ObligationKind.membership_charge,
            )
        )

    for payment in recurring_payments:
        if str(payment.get("member_id")) != member_id or not payment.get("is_active"):
            continue
        obligations.append(
            RecurringObligation(
                owner_id=member_id,
                amount_per_month=max(ZERO, _amount(payment.get("amount_per_month"))),
                kind=ObligationKind.recurring_payment,
            )
        )

    return obligations


def statement_balance(
    member: dict[str, Any],
    plan: Optional[dict[str, Any]],
    membership_charges: Sequence[dict[str, Any]],
    recurring_payments: Sequence[dict[str, Any]],
) -> Decimal:
    """Standing balance quoted in statement emails: owed so far plus this month's dues.

    Membership-type recurring payments already settle the plan fee, so they are
    not added a second time.
    """
    member_id = str(member["id"])
    dues = [p for p in recurring_payments if p.get("payment_type") != "membership"]
    obligations = member_obligations(member_id, plan, membership_charges, dues)
    return _amount(member.get("total_owed")) + total_monthly_obligation(
        member_id, obligations
    )
