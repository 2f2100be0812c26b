from datetime import date
from decimal import Decimal

from balances import to_records
from statements import DEFAULT_STATEMENT_TEMPLATE, StatementBook, resolve_statement_template


def make_book(**overrides) -> StatementBook:
    data = dict(
        members=[{"id": "m1", "full_name": "Levi"}],
        guests=[{"id": "g1", "full_name": "Visitor"}],
        transactions=to_records(
            [
                {"member_id": "m1", "type": "charge", "amount": 18, "date": "2025-02-10"},
                {"member_id": "m1", "type": "payment", "amount": 10, "date": "2025-03-04"},
                {
                    "member_id": "m1",
                    "type": "charge",
                    "amount": 25,
                    "date": "2025-03-01",
                    "description": "Monthly Membership",
                },
            ]
        ),
        guest_transactions=to_records(
            [{"guest_id": "g1", "type": "charge", "amount": 36, "date": "2025-05-20"}]
        ),
        plan={"standard_amount": 25},
        membership_charges=[{"member_id": "m1", "amount": 5, "is_active": True}],
        recurring_payments=[],
    )
    data.update(overrides)
    return StatementBook(**data)


def test_member_statement_applies_plan_and_posted_charges() -> None:
    book = make_book()
    statement = book.member_statement(book.members[0], "2025-03")

    assert statement.charges_total == Decimal("25")
    assert statement.payments_total == Decimal("10")
    # obligations of 30 less the 25 already posted this month
    assert statement.missing_monthly == Decimal("5")
    assert statement.projected_balance == Decimal("38")


def test_guest_statement_has_no_obligations() -> None:
    book = make_book()
    statement = book.guest_statement(book.guests[0], "2025-05")
    assert statement.charges_total == Decimal("36")
    assert statement.missing_monthly == Decimal("0")
    assert statement.projected_balance == Decimal("36")


def test_months_with_activity_in_past_year() -> None:
    book = make_book()
    months = book.months_with_activity(2025, today=date(2026, 1, 15))
    assert [m.slug for m in months] == ["2025-02", "2025-03", "2025-05"]


def test_months_with_activity_in_current_year_keeps_current_month() -> None:
    book = make_book()
    months = book.months_with_activity(2025, today=date(2025, 4, 2))
    assert [m.slug for m in months] == ["2025-02", "2025-03", "2025-04"]


def test_template_defaults_fill_missing_fields() -> None:
    assert resolve_statement_template([]) == DEFAULT_STATEMENT_TEMPLATE
    merged = resolve_statement_template([{"header_title": "Beth Shalom", "show_email": False}])
    assert merged["header_title"] == "Beth Shalom"
    assert merged["show_email"] is False
    assert merged["footer_text"] == DEFAULT_STATEMENT_TEMPLATE["footer_text"]


async def test_load_gathers_every_collection(signed_in) -> None:
    entities = signed_in.entities
    member = await entities.Member.create({"full_name": "Levi"})
    await entities.MembershipPlan.create({"standard_amount": 40})
    await entities.RecurringPayment.bulk_create(
        [
            {"member_id": member["id"], "amount_per_month": 10, "is_active": True},
            {"member_id": member["id"], "amount_per_month": 99, "is_active": False},
        ]
    )
    await entities.Transaction.create(
        {"member_id": member["id"], "type": "charge", "amount": 12, "date": "2025-03-02"}
    )
    await entities.StatementTemplate.create({"header_title": "Beth Shalom"})

    book = await StatementBook.load(signed_in)

    assert book.plan["standard_amount"] == 40
    assert len(book.recurring_payments) == 1
    assert book.template["header_title"] == "Beth Shalom"
    statement = book.member_statement(member, "2025-03")
    assert statement.projected_balance == Decimal("62")
