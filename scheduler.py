import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from config import get_settings
from database import session_scope
from periods import local_today, month_token, previous_month
from reports import snapshot_all_users


logger = logging.getLogger(__name__)

# (job id, source label, cron fields, misfire grace seconds)
SNAPSHOT_JOBS = (
    ("snapshot_daily", "daily_03:15", {"hour": 3, "minute": 15}, 3600),
    ("snapshot_month_close", "month_close", {"day": 1, "hour": 0, "minute": 30}, 6 * 3600),
)


class SchedulerManager:
    def __init__(self) -> None:
        self.timezone = get_settings().timezone
        self.scheduler = BackgroundScheduler(timezone=self.timezone)

    def _target_month(self, source: str) -> str:
        today = local_today()
        # The close job runs just after midnight on the 1st and settles last month.
        if source == "month_close":
            return previous_month(today)
        return month_token(today)

    def _run_job(self, source: str = "manual", month: Optional[str] = None) -> None:
        month = month or self._target_month(source)
        logger.info(f"snapshot_job: source={source} month={month}")
        with session_scope() as session:
            count = snapshot_all_users(session, month)
        logger.info(f"snapshot_job: source={source} month={month} users={count}")

    def start(self) -> None:
        for job_id, source, fields, grace in SNAPSHOT_JOBS:
            self.scheduler.add_job(
                self._run_job,
                CronTrigger(timezone=self.timezone, **fields),
                args=[source],
                id=job_id,
                replace_existing=True,
                misfire_grace_time=grace,
            )
        self.scheduler.start()
        logger.info(f"scheduler_started: jobs={','.join(job[0] for job in SNAPSHOT_JOBS)}")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("scheduler_stopped")
