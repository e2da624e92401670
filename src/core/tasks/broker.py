"""Taskiq broker + scheduler configuration.

Run the worker and scheduler with::

    taskiq worker --workers 1 src.core.tasks.broker:broker src.core.tasks.reply_tasks
    taskiq scheduler src.core.tasks.broker:scheduler src.core.tasks.reply_tasks
"""

from taskiq import TaskiqScheduler
from taskiq.schedule_sources import LabelScheduleSource
from taskiq_redis import ListQueueBroker

from src.core.config import settings

broker = ListQueueBroker(url=settings.redis_url)

scheduler = TaskiqScheduler(
    broker=broker,
    sources=[LabelScheduleSource(broker)],
)
