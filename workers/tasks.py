"""Celery task definitions for the match server."""
from celery import Task
from celery.exceptions import SoftTimeLimitExceeded
from contextlib import asynccontextmanager
import logging
from datetime import datetime, UTC
from typing import Any, Dict
import asyncio
from functools import wraps

from pydantic import ValidationError
from redis.exceptions import RedisError

import config
import stores
from infrastructure.redis import RedisClient, MatchEvents
from models.api_models import StateUpdateMessage
from models.domain_models import STATE_UPDATE_ROBOT_RESPONSE_COMPLETE
from services.fanout import STATE_UPDATES_QUEUE
from workers.celery_app import app

logger = logging.getLogger(__name__)

soft_time_limit = 60  # seconds
hard_time_limit = 180  # seconds

heavy_task_soft_time_limit = 120  # seconds
heavy_task_hard_time_limit = 300  # seconds


def celery_task(**task_kwargs):
	"""Combined decorator that registers a Celery task and adds error handling.

	Automatically:
	- Registers the function as a Celery task via @app.task()
	- Wraps execution with error handling (SoftTimeLimitExceeded, generic exceptions)
	- For retryable exceptions: logs and re-raises to allow Celery's autoretry mechanism
	- For non-retryable exceptions: logs and returns graceful failure dict

	Exceptions without a `retryable` flag are retried, except ValueError.

	Usage:
		@celery_task(bind=True, queue="ai_responses", ...)
		def my_task(self, ...):
			# business logic
	"""
	def decorator(func):
		@wraps(func)
		def wrapper(self, *args, **kwargs):
			try:
				return func(self, *args, **kwargs)
			except SoftTimeLimitExceeded:
				logger.warning(f"{func.__name__} exceeded soft time limit, graceful shutdown")
				raise
			except Exception as exc:
				is_retryable = getattr(exc, 'retryable', not isinstance(exc, ValueError))

				if not is_retryable:
					logger.error(f"{func.__name__} failed with non-retryable error: {exc.__class__.__name__}: {exc}", exc_info=True)
					# Return graceful failure dict instead of raising (prevents Celery retry)
					return {
						"status": "failure",
						"error": exc.__class__.__name__,
						"message": str(exc),
						"timestamp": datetime.now(UTC).isoformat(),
					}
				else:
					logger.error(f"{func.__name__} failed with retryable error: {exc.__class__.__name__}: {exc}", exc_info=True)
					raise
		# Register as Celery task with error handling
		return app.task(base=MatchServerTask, **task_kwargs)(wrapper)
	return decorator


class MatchServerTask(Task):
    """Base task class with custom error handling and logging."""

    autoretry_for = (Exception,)
    retry_kwargs = {"max_retries": 5}
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True

    def on_retry(self, exc: Exception, task_id: str, args: tuple, kwargs: dict, einfo: Any) -> None:
        """Log retry events."""
        logger.warning(
            f"Task {self.name} (id={task_id}) retrying after {exc}",
            extra={"task_id": task_id, "task_args": args, "task_kwargs": kwargs},
        )

    def on_failure(self, exc: Exception, task_id: str, args: tuple, kwargs: dict, einfo: Any) -> None:
        """Log task failures."""
        logger.error(
            f"Task {self.name} (id={task_id}) failed with {exc}",
            extra={"task_id": task_id, "task_args": args, "task_kwargs": kwargs},
            exc_info=einfo,
        )

    def on_success(self, result: Any, task_id: str, args: tuple, kwargs: dict) -> None:
        """Log task successes."""
        logger.info(
            f"Task {self.name} (id={task_id}) succeeded",
            extra={"task_id": task_id, "task_result": result},
        )


@asynccontextmanager
async def _match_context():
	"""MatchContext for one task run; the Redis client lives inside the task's event loop."""
	# Import here to avoid circular imports
	from routes.matches_helpers import MatchContext

	client = None
	events = None
	if config.REDIS_URL:
		client = RedisClient(config.REDIS_URL)
		try:
			await client.init()
			events = MatchEvents(client)
		except (RedisError, OSError) as exc:
			logger.warning(f"[WORKER] Match notifications disabled for this task: {exc}")
			client = None
	try:
		yield MatchContext(events=events)
	finally:
		if client is not None:
			await client.close()


def _get_store():
	try:
		return stores.get_match_store()
	except RuntimeError:
		raise RuntimeError("stores not initialized in worker")


@celery_task(
    bind=True,
    name="workers.tasks.generate_ai_response",
    queue="ai_responses",
    priority=1,
    soft_time_limit=heavy_task_soft_time_limit,
    time_limit=heavy_task_hard_time_limit,
)
def generate_ai_response(self, match_id: str, round_number: int, prompt: str, identity: str) -> Dict[str, Any]:
    """
    Generate and record one AI participant's answer, then announce it.

    The response-provider is retried with backoff inside the task and falls
    back to canned text, so provider failures never reach Celery's retry.

    Returns:
        dict: {"status", "recorded", "identity", "usedFallback"?, "timestamp"}

    Raises:
        MatchNotFound: the match was deleted (non-retryable)
        InvalidRound: the round moved on while generating (non-retryable)
        VersionConflict: contention outlasted the write retries (retryable)
    """
    logger.info(f"generate_ai_response called for match_id={match_id} round={round_number} identity={identity}")
    gs = _get_store()

    # Import here to avoid circular imports
    from routes import matches_helpers
    from services.providers import ResponseProvider, default_client

    async def run():
        async with _match_context() as ctx:
            return await matches_helpers.generate_and_record_ai_response(
                gs,
                match_id,
                round_number,
                prompt,
                identity,
                responder=ResponseProvider(client=default_client()),
                ctx=ctx,
            )

    result = asyncio.run(run())
    result["timestamp"] = datetime.now(UTC).isoformat()

    if result.get("recorded"):
        message = {
            "type": STATE_UPDATE_ROBOT_RESPONSE_COMPLETE,
            "matchId": match_id,
            "roundNumber": round_number,
            "robotId": identity,
            "timestamp": result["timestamp"],
        }
        try:
            handle_state_update.apply_async(args=[message], queue=STATE_UPDATES_QUEUE, ignore_result=True)
        except Exception as exc:
            # The threshold was already checked inline when the answer was recorded
            logger.error(f"Failed to enqueue state update for {match_id} round {round_number}: {exc}")

    logger.info(f"generate_ai_response completed for match_id={match_id}: {result}")
    return result


@celery_task(
    bind=True,
    name="workers.tasks.handle_state_update",
    queue="state_updates",
    priority=1,
    soft_time_limit=soft_time_limit,
    time_limit=hard_time_limit,
)
def handle_state_update(self, message: Dict[str, Any]) -> Dict[str, Any]:
    """
    Consume a ROBOT_RESPONSE_COMPLETE message and re-check the round thresholds.

    Returns:
        dict: {"status", "matchId", "roundNumber", "matchStatus", "timestamp"}
    """
    logger.info(f"handle_state_update called with {message}")
    try:
        parsed = StateUpdateMessage.model_validate(message)
    except ValidationError as exc:
        raise ValueError(f"Malformed state update message: {exc}") from exc

    gs = _get_store()

    # Import here to avoid circular imports
    from routes import matches_helpers

    async def run():
        async with _match_context() as ctx:
            return await matches_helpers.handle_state_update(gs, parsed.model_dump(exclude_none=True), ctx=ctx)

    match = asyncio.run(run())
    result = {
        "status": "success",
        "matchId": parsed.matchId,
        "roundNumber": parsed.roundNumber,
        "matchStatus": match.get("status"),
        "timestamp": datetime.now(UTC).isoformat(),
    }
    logger.info(f"handle_state_update completed: {result}")
    return result


@celery_task(
    bind=True,
    name="workers.tasks.delete_stale_matches",
    queue="maintenance",
    priority=2,
    soft_time_limit=heavy_task_soft_time_limit,
    time_limit=heavy_task_hard_time_limit,
)
def delete_stale_matches(self, inactivity_days: int = 30) -> Dict[str, Any]:
    """
    Periodic task to delete matches not updated for a prolonged period.

    Args:
        inactivity_days: number of days of inactivity before deletion (default 30)

    Returns:
        dict: {
            "status": "success" | "failure",
            "deleted_count": int,
            "timestamp": str,
        }
    """
    logger.info(f"Starting delete_stale_matches task (inactivity_days={inactivity_days})")
    gs = _get_store()

    deleted_count = asyncio.run(gs.delete_stale_matches(inactivity_days))
    logger.info(f"Deleted {deleted_count} stale matches")

    result = {
        "status": "success",
        "deleted_count": deleted_count,
        "inactivity_days": inactivity_days,
        "timestamp": datetime.now(UTC).isoformat(),
    }

    logger.info(f"delete_stale_matches task completed: {result}")
    return result
