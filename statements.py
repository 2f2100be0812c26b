import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from balances import PeriodSnapshot, member_obligations, period_snapshot, to_records
from client import LedgerClient
from periods import Period, month_period, months_for_year
from schemas import TransactionRecord

logger = logging.getLogger(__name__)

DEFAULT_STATEMENT_TEMPLATE: dict[str, Any] = {
    "header_title": "Shtiebel 48",
    "header_subtitle": "Manager",
    "header_font_size": 32,
    "header_color": "#1e3a8a",
    "show_member_id": True,
    "show_email": True,
    "show_charges_section": True,
    "show_payments_section": True,
    "charges_color": "#d97706",
    "payments_color": "#16a34a",
    "balance_color": "#dc2626",
    "body_font_size": 14,
    "footer_text": "Thank you for your support",
    "show_footer": True,
}


def resolve_statement_template(template_or_list: Any) -> dict[str, Any]:
    template = template_or_list
    if isinstance(template_or_list, list):
        template = template_or_list[0] if template_or_list else None
    if isinstance(template, dict):
        return {**DEFAULT_STATEMENT_TEMPLATE, **template}
    return dict(DEFAULT_STATEMENT_TEMPLATE)


@dataclass
class StatementBook:
    members: list[dict[str, Any]] = field(default_factory=list)
    guests: list[dict[str, Any]] = field(default_factory=list)
    transactions: list[TransactionRecord] = field(default_factory=list)
    guest_transactions: list[TransactionRecord] = field(default_factory=list)
    plan: Optional[dict[str, Any]] = None
    membership_charges: list[dict[str, Any]] = field(default_factory=list)
    recurring_payments: list[dict[str, Any]] = field(default_factory=list)
    template: dict[str, Any] = field(
        default_factory=lambda: dict(DEFAULT_STATEMENT_TEMPLATE)
    )

    @classmethod
    async def load(cls, client: LedgerClient) -> "StatementBook":
        entities = client.entities
        (
            members,
            guests,
            transactions,
            guest_transactions,
            plans,
            membership_charges,
            recurring_payments,
            templates,
        ) = await asyncio.gather(
            entities.Member.list_all("-full_name"),
            entities.Guest.list_all("full_name"),
            entities.Transaction.list_all("-date"),
            entities.GuestTransaction.list_all("-date"),
            entities.MembershipPlan.list("-created_date", 1),
            entities.MembershipCharge.list_all("-created_date"),
            entities.RecurringPayment.filter_all({"is_active": True}),
            entities.StatementTemplate.list("-created_date", 1),
        )
        logger.info(
            f"statement_book_loaded: members={len(members)} guests={len(guests)} "
            f"transactions={len(transactions)} guest_transactions={len(guest_transactions)}"
        )
        return cls(
            members=members,
            guests=guests,
            transactions=to_records(transactions),
            guest_transactions=to_records(guest_transactions),
            plan=plans[0] if isinstance(plans, list) and plans else None,
            membership_charges=membership_charges,
            recurring_payments=recurring_payments,
            template=resolve_statement_template(templates),
        )

    def member_statement(self, member: dict[str, Any], month: Any) -> PeriodSnapshot:
        member_id = str(member["id"])
        obligations = member_obligations(
            member_id, self.plan, self.membership_charges, self.recurring_payments
        )
        return period_snapshot(member_id, month, self.transactions, obligations)

    def guest_statement(self, guest: dict[str, Any], month: Any) -> PeriodSnapshot:
        return period_snapshot(
            str(guest["id"]), month, self.guest_transactions, owner_key="guest_id"
        )

    def has_activity(self, month: Any) -> bool:
        period = month_period(month)
        return any(
            t.date is not None and period.contains(t.date)
            for t in (*self.transactions, *self.guest_transactions)
        )

    def months_with_activity(
        self, year: int, today: Optional[date] = None
    ) -> list[Period]:
        today = today or date.today()
        months = months_for_year(year)
        if year != today.year:
            return [m for m in months if self.has_activity(m)]
        return [
            m
            for m in months
            if m.start.month == today.month
            or (m.start.month < today.month and self.has_activity(m))
        ]
