"""
定时任务调度器

运行方式：
    python -m commerce.worker.scheduler
"""

import logging
from datetime import timezone

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from commerce.core.config import settings
from commerce.worker.tasks import reconcile_payments

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def main() -> None:
    scheduler = BlockingScheduler(timezone=timezone.utc)
    scheduler.add_job(
        reconcile_payments,
        IntervalTrigger(seconds=settings.PAYMENT_RECONCILE_INTERVAL_SECONDS),
        id="payment_reconcile",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info(
        "Scheduler started. Payment reconcile runs every %ss.",
        settings.PAYMENT_RECONCILE_INTERVAL_SECONDS,
    )
    scheduler.start()


if __name__ == "__main__":
    main()
