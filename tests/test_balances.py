from datetime import date
from decimal import Decimal

from balances import (
    is_recurring_charge_description,
    member_obligations,
    missing_monthly,
    period_snapshot,
    period_totals,
    projected_balance,
    statement_balance,
)
from models import ObligationKind
from schemas import RecurringObligation


def txn(day, type_, amount, description="", member_id="m1"):
    return {
        "member_id": member_id,
        "type": type_,
        "amount": amount,
        "date": day,
        "description": description,
    }


def obligation(amount, owner_id="m1", active=True):
    return RecurringObligation(
        owner_id=owner_id,
        amount_per_month=Decimal(str(amount)),
        is_active=active,
        kind=ObligationKind.recurring_payment,
    )


def test_charges_minus_payments_without_obligations() -> None:
    transactions = [
        txn("2025-03-01", "charge", 50),
        txn("2025-03-15", "payment", 20),
    ]
    assert projected_balance("m1", "2025-03", transactions, []) == Decimal("30")


def test_unposted_obligation_is_still_owed() -> None:
    assert projected_balance("m1", "2025-03", [], [obligation(75)]) == Decimal("75")


def test_posted_recurring_charge_is_not_double_counted() -> None:
    transactions = [txn("2025-03-01", "charge", 75, "Monthly Membership")]
    snapshot = period_snapshot("m1", "2025-03", transactions, [obligation(75)])
    assert snapshot.projected_balance == Decimal("75")
    assert snapshot.missing_monthly == Decimal("0")


def test_missing_monthly_floors_at_zero() -> None:
    transactions = [
        txn("2025-03-01", "charge", 50, "Monthly membership - March"),
        txn("2025-03-02", "charge", 50, "Additional monthly payment"),
    ]
    assert missing_monthly("m1", "2025-03", transactions, [obligation(75)]) == Decimal("0")
    assert projected_balance("m1", "2025-03", transactions, [obligation(75)]) == Decimal("100")


def test_later_month_transactions_are_excluded() -> None:
    transactions = [
        txn("2025-03-10", "charge", 40),
        txn("2025-04-01", "charge", 500),
        txn("2025-04-02", "payment", 10),
    ]
    assert projected_balance("m1", "2025-03", transactions) == Decimal("40")


def test_earlier_months_count_toward_balance_but_not_activity() -> None:
    transactions = [
        txn("2025-01-05", "charge", 100),
        txn("2025-02-05", "payment", 30),
        txn("2025-03-05", "charge", 10),
        txn("2025-03-20", "donation", 999),
    ]
    totals = period_totals("m1", "2025-03", transactions)
    assert totals.charges_total == Decimal("10")
    assert totals.payments_total == Decimal("0")
    assert projected_balance("m1", "2025-03", transactions) == Decimal("80")


def test_recurring_charge_posted_in_earlier_month_does_not_cover_this_month() -> None:
    transactions = [txn("2025-02-01", "charge", 75, "Monthly Membership")]
    snapshot = period_snapshot("m1", "2025-03", transactions, [obligation(75)])
    assert snapshot.missing_monthly == Decimal("75")
    assert snapshot.projected_balance == Decimal("150")


def test_only_recognized_labels_count_as_posted() -> None:
    transactions = [txn("2025-03-01", "charge", 75, "Standard Monthly - Mar 2025")]
    snapshot = period_snapshot("m1", "2025-03", transactions, [obligation(75)])
    assert snapshot.missing_monthly == Decimal("75")
    assert snapshot.projected_balance == Decimal("150")


def test_recurring_payment_description_is_not_a_posted_charge() -> None:
    transactions = [txn("2025-03-01", "payment", 75, "Monthly Membership")]
    assert missing_monthly("m1", "2025-03", transactions, [obligation(75)]) == Decimal("75")


def test_inactive_and_foreign_obligations_are_ignored() -> None:
    obligations = [obligation(75, active=False), obligation(20, owner_id="m2")]
    assert projected_balance("m1", "2025-03", [], obligations) == Decimal("0")


def test_other_owners_and_undated_records_are_skipped() -> None:
    transactions = [
        txn("2025-03-01", "charge", 10),
        txn("2025-03-01", "charge", 70, member_id="m2"),
        txn(None, "charge", 500),
        txn("not-a-date", "charge", 500),
        {"member_id": "m1", "type": "charge", "date": "2025-03-09"},
    ]
    assert projected_balance("m1", "2025-03", transactions) == Decimal("10")


def test_guest_balance_uses_guest_key() -> None:
    transactions = [
        {"guest_id": "g1", "type": "charge", "amount": 36, "date": "2025-03-03"},
        {"guest_id": "g1", "type": "payment", "amount": 18, "date": "2025-03-04"},
    ]
    snapshot = period_snapshot("g1", date(2025, 3, 1), transactions, owner_key="guest_id")
    assert snapshot.period_start == date(2025, 3, 1)
    assert snapshot.period_end == date(2025, 3, 31)
    assert snapshot.projected_balance == Decimal("18")
    assert len(snapshot.transactions) == 2


def test_label_matching_is_case_insensitive_substring() -> None:
    assert is_recurring_charge_description("Monthly Membership - Jan")
    assert is_recurring_charge_description("BALANCE PAYOFF PLAN installment")
    assert not is_recurring_charge_description("Monthly dues")
    assert not is_recurring_charge_description(None)


def test_member_obligations_collects_plan_charges_and_recurring() -> None:
    plan = {"standard_amount": 50}
    charges = [
        {"member_id": "m1", "amount": 10, "is_active": True},
        {"member_id": "m1", "amount": 99, "is_active": False},
        {"member_id": "m2", "amount": 7, "is_active": True},
    ]
    recurring = [{"member_id": "m1", "amount_per_month": 25, "is_active": True}]

    obligations = member_obligations("m1", plan, charges, recurring)

    assert [o.kind for o in obligations] == [
        ObligationKind.standard_plan,
        ObligationKind.membership_charge,
        ObligationKind.recurring_payment,
    ]
    assert projected_balance("m1", "2025-03", [], obligations) == Decimal("85")


def test_member_obligations_without_plan() -> None:
    assert member_obligations("m1", None, [], []) == []


def test_non_finite_amounts_count_as_zero() -> None:
    transactions = [
        txn("2025-03-01", "charge", "NaN"),
        txn("2025-03-02", "charge", "Infinity"),
        txn("2025-03-03", "payment", "-Infinity"),
        txn("2025-03-04", "charge", 12),
    ]
    snapshot = period_snapshot("m1", "2025-03", transactions)
    assert snapshot.charges_total == Decimal("12")
    assert snapshot.projected_balance == Decimal("12")


def test_non_finite_obligation_amounts_are_dropped() -> None:
    plan = {"standard_amount": "NaN"}
    charges = [{"member_id": "m1", "amount": "Infinity", "is_active": True}]
    recurring = [{"member_id": "m1", "amount_per_month": "sNaN", "is_active": True}]

    obligations = member_obligations("m1", plan, charges, recurring)

    assert [o.kind for o in obligations] == [
        ObligationKind.membership_charge,
        ObligationKind.recurring_payment,
    ]
    assert projected_balance("m1", "2025-03", [], obligations) == Decimal("0")


def test_statement_balance_adds_dues_to_amount_owed() -> None:
    member = {"id": "m1", "total_owed": "120.50"}
    plan = {"standard_amount": 40}
    charges = [{"member_id": "m1", "amount": 10, "is_active": True}]
    recurring = [
        {"member_id": "m1", "amount_per_month": 25, "is_active": True},
        {
            "member_id": "m1",
            "amount_per_month": 40,
            "is_active": True,
            "payment_type": "membership",
        },
    ]
    assert statement_balance(member, plan, charges, recurring) == Decimal("195.50")
    assert statement_balance({"id": "m2"}, None, charges, recurring) == Decimal("0")
