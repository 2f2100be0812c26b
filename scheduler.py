import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from billing import run_monthly_membership_charges
from config import get_settings
from database import session_scope
from entity_store import EntityStore
from mailer import EmailSender, SmtpSender
from statement_emails import run_email_schedules


logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self, sender: Optional[EmailSender] = None) -> None:
        settings = get_settings()
        self.scheduler = BackgroundScheduler(timezone=settings.billing_timezone)
        self.sender = sender or SmtpSender(settings)

    def _run_job(self, source: str = "manual") -> None:
        logger.info(f"scheduler_run: source={source}")
        with session_scope() as session:
            result = run_monthly_membership_charges(EntityStore(session))
            logger.info(f"scheduler_run: source={source} result={result}")

    def _run_email_job(self) -> None:
        with session_scope() as session:
            result = run_email_schedules(EntityStore(session), self.sender)
        if "skipped" not in result:
            logger.info(f"email_run: result={result}")

    def add_jobs(self) -> None:
        trigger = CronTrigger(hour=0, minute=15)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["daily_00:15"],
            id="monthly_charges_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        trigger = IntervalTrigger(hours=1)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["hourly_safety_net"],
            id="monthly_charges_hourly_safety",
            replace_existing=True,
            misfire_grace_time=300,
        )

        # schedules name an exact local minute, so every minute is checked
        trigger = CronTrigger(minute="*")
        self.scheduler.add_job(
            self._run_email_job,
            trigger,
            id="statement_emails_minutely",
            replace_existing=True,
            misfire_grace_time=30,
            max_instances=1,
            coalesce=True,
        )

    def start(self) -> None:
        self._run_job("startup")
        self.add_jobs()
        self.scheduler.start()
        logger.info(
            "Scheduler started with daily 00:15, hourly safety net and minutely statement emails"
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
