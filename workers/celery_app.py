"""Celery app configuration and task scheduling."""
import os

# Configure timezone BEFORE importing anything else
import pytz
os.environ['TZ'] = 'UTC'

from celery import Celery
from celery.schedules import crontab
from kombu import Exchange, Queue
import logging
import config

logger = logging.getLogger(__name__)

# Initialize Celery app
app = Celery("robot_orchestra")

logger.info(f"[CELERY] Using broker_url: {config.CELERY_BROKER_URL}")
logger.info(f"[CELERY] Using result_backend: {config.CELERY_RESULT_BACKEND}")

app.config_from_object({
    "broker_url": config.CELERY_BROKER_URL,
    "result_backend": config.CELERY_RESULT_BACKEND,
    "task_serializer": "json",
    "accept_content": ["json"],
    "result_serializer": "json",
    "timezone": pytz.UTC,
    "enable_utc": True,
    "task_acks_late": True,
    "worker_prefetch_multiplier": 1,
})

# Define queues
default_exchange = Exchange("default", type="direct")
ai_responses_exchange = Exchange("ai_responses", type="direct")
state_updates_exchange = Exchange("state_updates", type="direct")
maintenance_exchange = Exchange("maintenance", type="direct")

app.conf.task_queues = (
    Queue(
        "default",
        exchange=default_exchange,
        routing_key="default",
        queue_arguments={"x-max-priority": 10},
    ),
    Queue(
        "ai_responses",
        exchange=ai_responses_exchange,
        routing_key="ai_responses",
        queue_arguments={"x-max-priority": 10},
    ),
    Queue(
        "state_updates",
        exchange=state_updates_exchange,
        routing_key="state_updates",
        queue_arguments={"x-max-priority": 10},
    ),
    Queue(
        "maintenance",
        exchange=maintenance_exchange,
        routing_key="maintenance",
        queue_arguments={"x-max-priority": 10},
    ),
)

# Default queue for tasks without explicit routing
app.conf.task_default_queue = "default"
app.conf.task_default_exchange = "default"
app.conf.task_default_routing_key = "default"

# Periodic task schedules (Celery Beat)
app.conf.beat_schedule = {
    "delete-stale-matches": {
        "task": "workers.tasks.delete_stale_matches",
        "schedule": crontab(minute=0, hour=3),  # Every day, 03:00 UTC
        "kwargs": {"inactivity_days": config.STALE_MATCH_DAYS},
        "options": {
            "queue": "maintenance",
            "priority": 2,  # Low priority
        },
    },
}

# Task configuration defaults
app.conf.task_default_retry_delay = 60
app.conf.task_max_retries = 5

# NOTE: Stores are NOT initialized here at module import time.
# An aiosqlite connection opened at import time lives in a different event
# loop context than the one each task runs in, causing hangs/timeouts.
# Stores are initialized lazily on first use (see stores.get_match_store()).
