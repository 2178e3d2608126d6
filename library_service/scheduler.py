import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

JOB_ID = "update_missed_deadlines"


def build_scheduler(reservation_service, cron_expression):
    """
    Background scheduler running the deadline sweep on a crontab schedule.
    The caller starts and shuts it down.
    """
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        reservation_service.update_missed_deadlines,
        CronTrigger.from_crontab(cron_expression),
        id=JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    logger.info("Deadline sweep scheduled with cron %r", cron_expression)
    return scheduler
