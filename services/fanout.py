"""AI fan-out: one background generation task per AI participant."""
from __future__ import annotations

from typing import Callable, Iterable, Optional
import logging

import config

logger = logging.getLogger(__name__)

AI_RESPONSES_QUEUE = "ai_responses"
STATE_UPDATES_QUEUE = "state_updates"

# (match_id, round_number, prompt, identity, countdown_seconds) -> None
Enqueue = Callable[[str, int, str, str, float], None]


def _celery_enqueue(match_id: str, round_number: int, prompt: str, identity: str, countdown: float) -> None:
	# Import here to avoid circular imports (workers.tasks imports the route helpers)
	from workers.tasks import generate_ai_response

	generate_ai_response.apply_async(
		args=[match_id, round_number, prompt, identity],
		countdown=countdown,
		queue=AI_RESPONSES_QUEUE,
		ignore_result=True,
	)


class AIFanoutCoordinator:
	"""Fire-and-forget dispatch of AI response generation.

	Results come back through `matches_helpers.record_ai_response`, followed
	by a state-update message that re-checks the round threshold.
	"""

	def __init__(self, enqueue: Optional[Enqueue] = None, *, stagger_seconds: float = config.AI_STAGGER_SECONDS):
		self._enqueue = enqueue or _celery_enqueue
		self.stagger_seconds = stagger_seconds

	def dispatch(self, match_id: str, round_number: int, prompt: str, ai_identities: Iterable[str]) -> list[str]:
		"""Enqueue one task per AI identity. Returns the identities actually enqueued."""
		enqueued = []
		for index, identity in enumerate(ai_identities):
			# stagger provider calls to stay under the AI service rate limit
			countdown = index * self.stagger_seconds
			try:
				self._enqueue(match_id, round_number, prompt, identity, countdown)
			except Exception as exc:
				# The timeout sweep fills in a placeholder if this AI never answers
				logger.error(
					f"[FANOUT] Failed to enqueue AI response for {identity} in match {match_id} round {round_number}: {exc}",
					exc_info=True,
				)
				continue
			enqueued.append(identity)
		logger.info(f"[FANOUT] Dispatched {enqueued} for match {match_id} round {round_number}")
		return enqueued
