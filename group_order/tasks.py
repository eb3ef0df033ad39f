"""
Celery Tasks
Background work that must not hold up a request: archiving the summary
of a group when it is closed.
"""

import logging
import time

from group_order.celery_worker import celery_app
from group_order.services.excel_manager import ExcelManager

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    retry_backoff=True
)
def archive_group_summary(self, summary_data: dict) -> dict:
    """
    Append a closed group's summary to the archive workbook.

    Args:
        summary_data: group_id, group_name, store_name, order_date,
            end_time and the summary rows (as dicts)

    Returns:
        dict: Result of the archive operation
    """
    task_id = self.request.id
    group_id = summary_data.get('group_id', 'unknown')

    logger.info(f"Task {task_id}: archiving group #{group_id}")
    start_time = time.time()

    result = ExcelManager.archive_group_summary(summary_data)

    elapsed = round(time.time() - start_time, 3)
    result['task_id'] = task_id
    result['processing_time_seconds'] = elapsed

    if result['success']:
        logger.info(f"Task {task_id}: group #{group_id} archived in {elapsed}s")
    else:
        logger.warning(f"Task {task_id}: group #{group_id} not archived - {result['message']}")
        # Lock timeouts are worth another try; eager runs return the failure as-is
        if not self.request.is_eager and 'timeout' in result['message'].lower():
            raise self.retry()

    return result

