"""Retry policy for calls to the external response-provider."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar
import asyncio
import logging
import random

import config

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
	"""Exponential backoff with additive jitter.

	Attempt `n` (0-based) that fails waits `base_delay * 2**n` plus a uniform
	jitter in `[0, max_jitter]` seconds, capped at `max_delay`.
	"""

	max_attempts: int = 3
	base_delay: float = 1.0
	max_jitter: float = 0.5
	max_delay: float = 30.0

	@classmethod
	def from_config(cls) -> "RetryPolicy":
		return cls(
			max_attempts=config.AI_RETRY_MAX_ATTEMPTS,
			base_delay=config.AI_RETRY_BASE_DELAY,
			max_jitter=config.AI_RETRY_MAX_JITTER,
		)

	def delay_for(self, attempt: int, rng: random.Random | None = None) -> float:
		jitter = (rng or random).uniform(0, self.max_jitter) if self.max_jitter > 0 else 0.0
		return min(self.base_delay * (2 ** attempt) + jitter, self.max_delay)


async def call_with_retry(
	func: Callable[[], Awaitable[T]],
	policy: RetryPolicy,
	*,
	retry_on: tuple[type[BaseException], ...] = (Exception,),
	description: str = "call",
	sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
	"""Await `func()` up to `policy.max_attempts` times; re-raise the last error."""
	attempts = max(1, policy.max_attempts)
	for attempt in range(attempts):
		try:
			return await func()
		except retry_on as exc:
			if attempt + 1 >= attempts:
				logger.warning(f"{description} failed after {attempts} attempts: {exc}")
				raise
			delay = policy.delay_for(attempt)
			logger.info(f"{description} failed ({exc}); retrying in {delay:.2f}s (attempt {attempt + 1}/{attempts})")
			await sleep(delay)
	raise RuntimeError("unreachable")
