import calendar
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError

from balances import statement_balance
from entity_store import EntityStore
from mailer import EmailDeliveryError, EmailSender
from schemas import EmailSchedule

logger = logging.getLogger(__name__)


def normalize_schedule(record: dict[str, Any]) -> Optional[EmailSchedule]:
    try:
        return EmailSchedule.model_validate(record)
    except ValidationError as exc:
        logger.warning(f"email_schedule_invalid: id={record.get('id')} errors={exc.error_count()}")
        return None


def due_month(schedule: EmailSchedule, now: datetime) -> Optional[str]:
    """Month key to send for, when the schedule's local time is its slot this month.

    The day is capped at the month's last day. A month already recorded in
    ``last_sent_month`` is never sent twice.
    """
    if not schedule.enabled:
        return None
    try:
        local = now.astimezone(ZoneInfo(schedule.time_zone))
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"email_schedule_bad_timezone: id={schedule.id} tz={schedule.time_zone}")
        return None
    target_day = min(schedule.day_of_month, calendar.monthrange(local.year, local.month)[1])
    if (local.day, local.hour, local.minute) != (target_day, schedule.hour, schedule.minute):
        return None
    month_key = f"{local.year:04d}-{local.month:02d}"
    if schedule.last_sent_month == month_key:
        return None
    return month_key


def split_selected_ids(selected: list[str]) -> tuple[set[str], set[str]]:
    member_ids: set[str] = set()
    guest_ids: set[str] = set()
    for value in selected:
        if value.startswith("member:"):
            member_ids.add(value[len("member:"):])
        elif value.startswith("guest:"):
            guest_ids.add(value[len("guest:"):])
        else:
            member_ids.add(value)
    return member_ids, guest_ids


def fill_template(template: str, record: dict[str, Any], balance: Decimal) -> str:
    name = (
        record.get("english_name")
        or record.get("full_name")
        or record.get("hebrew_name")
        or "Member"
    )
    values = {
        "{member_name}": str(name),
        "{hebrew_name}": str(record.get("hebrew_name") or ""),
        "{balance}": f"${balance:.2f}",
        "{id}": str(record.get("member_id") or record.get("id") or ""),
    }
    out = template
    for placeholder, value in values.items():
        out = out.replace(placeholder, value)
    return out


def _guest_balance(guest: dict[str, Any]) -> Decimal:
    try:
        owed = Decimal(str(guest.get("total_owed") or 0))
    except ArithmeticError:
        return Decimal("0")
    return owed if owed.is_finite() else Decimal("0")


def run_email_schedules(
    store: EntityStore, send: EmailSender, now: Optional[datetime] = None
) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)

    due: list[tuple[EmailSchedule, str]] = []
    for record in store.list("EmailSchedule", "-created_date", 200):
        schedule = normalize_schedule(record)
        month_key = due_month(schedule, now) if schedule else None
        if month_key:
            due.append((schedule, month_key))

    if not due:
        return {"ok": True, "skipped": "not_time"}

    members = store.list("Member", "-created_date")
    guests = store.list("Guest", "-created_date")
    plans = store.list("MembershipPlan", "-created_date", 1)
    plan = plans[0] if plans else None
    membership_charges = store.filter("MembershipCharge", {"is_active": True})
    recurring_payments = store.filter("RecurringPayment", {"is_active": True})

    sent = 0
    skipped_no_email = 0
    failed: list[dict[str, Any]] = []

    for schedule, month_key in due:
        if schedule.send_to == "selected":
            member_ids, guest_ids = split_selected_ids(schedule.selected_member_ids)
            recipients = [(m, False) for m in members if str(m["id"]) in member_ids]
            recipients += [(g, True) for g in guests if str(g["id"]) in guest_ids]
        else:
            recipients = [(m, False) for m in members]

        for record, is_guest in recipients:
            email = record.get("email")
            if not email:
                skipped_no_email += 1
                continue
            if is_guest:
                balance = _guest_balance(record)
            else:
                balance = statement_balance(
                    record, plan, membership_charges, recurring_payments
                )
            try:
                send(email, schedule.subject, fill_template(schedule.body, record, balance))
            except EmailDeliveryError as exc:
                failed.append({"id": record["id"], "email": email, "reason": str(exc)})
                continue
            sent += 1

        store.update("EmailSchedule", schedule.id, {"last_sent_month": month_key})

    logger.info(
        f"statement_emails: schedules={len(due)} sent={sent} "
        f"skipped_no_email={skipped_no_email} failed={len(failed)}"
    )
    return {
        "ok": True,
        "sent": sent,
        "skipped_no_email": skipped_no_email,
        "failed": failed,
        "schedules": len(due),
    }
