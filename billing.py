import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError

from config import get_settings
from entity_store import EntityStore
from models import TransactionType

logger = logging.getLogger(__name__)


def billing_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.billing_timezone)
    return datetime.now(tz).date()


def _standard_amount(plan: Optional[dict[str, Any]]) -> Decimal:
    try:
        return Decimal(str((plan or {}).get("standard_amount")))
    except InvalidOperation:
        return Decimal("0")


def _charged_this_month(store: EntityStore, member_id: str, month_key: str) -> bool:
    if store.filter("Transaction", {"id": f"monthly-membership:{member_id}:{month_key}"}, limit=1):
        return True
    existing = store.filter(
        "Transaction",
        {"member_id": member_id, "type": TransactionType.charge.value, "monthly_key": month_key},
        limit=1,
    )
    if existing:
        return True
    charges = store.filter(
        "Transaction",
        {"member_id": member_id, "type": TransactionType.charge.value},
        "-date",
        2000,
    )
    return any(
        str(t.get("description") or "").startswith("Standard Monthly")
        and str(t.get("date") or "").startswith(month_key)
        for t in charges
    )


def run_monthly_membership_charges(
    store: EntityStore, today: Optional[date] = None
) -> dict[str, Any]:
    today = today or billing_today()

    plans = store.list("MembershipPlan", "-created_date", 1)
    standard_amount = _standard_amount(plans[0] if plans else None)
    if not standard_amount.is_finite() or standard_amount <= 0:
        return {"ok": True, "skipped": "no_plan"}

    members = store.list("Member", "-created_date")
    if not members:
        return {"ok": True, "skipped": "no_members"}

    month_key = f"{today.year:04d}-{today.month:02d}"
    label = today.strftime("%b %Y")
    charge_date = today.replace(day=1).isoformat()
    amount = float(standard_amount)
    charged = 0
    skipped = 0

    for member in members:
        member_id = str(member["id"])
        if _charged_this_month(store, member_id, month_key):
            skipped += 1
            continue

        try:
            store.create(
                "Transaction",
                {
                    "id": f"monthly-membership:{member_id}:{month_key}",
                    "member_id": member_id,
                    "member_name": member.get("full_name")
                    or member.get("english_name")
                    or member.get("hebrew_name"),
                    "type": TransactionType.charge.value,
                    "description": f"Standard Monthly - {label}",
                    "amount": amount,
                    "date": charge_date,
                    "provider": "system",
                    "monthly_key": month_key,
                },
            )
        except IntegrityError:
            store.session.rollback()
            skipped += 1
            continue

        total_owed = float(member.get("total_owed") or 0) + amount
        store.update("Member", member_id, {"total_owed": total_owed})
        charged += 1

    logger.info(
        f"monthly_charges: month={month_key} charged={charged} skipped={skipped}"
    )
    return {"ok": True, "charged": charged, "skipped": skipped}
