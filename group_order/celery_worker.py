"""
Celery Worker Configuration
Sets up Celery with Redis as message broker and result backend.

Run a worker with:
    celery -A group_order.celery_worker worker --loglevel=info
"""

from celery import Celery

from group_order.core.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    'group_order_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['group_order.tasks']  # Module containing our tasks
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,  # Process one task at a time
    worker_concurrency=2,  # Archive writes are serialized by the file lock anyway

    # Result settings
    result_expires=3600,  # Results expire after 1 hour

    # Task execution settings
    task_acks_late=True,  # Acknowledge task after completion
    task_reject_on_worker_lost=True,  # Requeue task if worker dies

    # Run tasks in-process (tests, single-process deployments)
    task_always_eager=settings.celery_task_always_eager,
    task_eager_propagates=False,

    broker_connection_retry_on_startup=True,
)


if __name__ == '__main__':
    celery_app.start()
