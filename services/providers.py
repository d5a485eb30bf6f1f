"""Clients for the external AI service: prompt provider and response provider.

Both providers are opaque collaborators. A failure never reaches the match:
after the retry policy is exhausted the caller gets fallback content.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
import logging
import random

import httpx

import config
from .personalities import Personality, fallback_response
from .retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)


PROMPT_POOL = (
	"What's the most interesting thing that happened to you this week?",
	"If you could have dinner with any historical figure, who would it be and why?",
	"What's a skill you wish you had but don't?",
	"Describe your perfect weekend in just three sentences.",
	"What's the strangest dream you remember having?",
	"What does the color blue sound like?",
	"Describe the smell of rain to someone who has never experienced it.",
	"What would you name a cloud that looked exactly like you?",
)


class ProviderError(Exception):
	"""The AI service failed or answered with something unusable."""


class AIServiceClient:
	"""Thin JSON-over-HTTP client for the AI service `/ai/generate` endpoint."""

	def __init__(self, base_url: str, *, timeout: float = config.AI_SERVICE_TIMEOUT, transport: httpx.AsyncBaseTransport | None = None):
		self.base_url = base_url.rstrip("/")
		self.timeout = timeout
		self._transport = transport

	async def generate(self, task: str, inputs: dict[str, Any], options: dict[str, Any] | None = None) -> dict[str, Any]:
		payload = {"task": task, "inputs": inputs, "options": options or {}}
		try:
			async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
				response = await client.post("/ai/generate", json=payload)
				response.raise_for_status()
				body = response.json()
		except httpx.HTTPError as exc:
			raise ProviderError(f"AI service request for {task} failed: {exc}") from exc
		except ValueError as exc:
			raise ProviderError(f"AI service returned invalid JSON for {task}") from exc
		if not isinstance(body, dict):
			raise ProviderError(f"AI service returned unexpected body for {task}: {body!r}")
		return body


def default_client() -> AIServiceClient | None:
	return AIServiceClient(config.AI_SERVICE_URL) if config.AI_SERVICE_URL else None


@dataclass
class PromptProvider:
	client: AIServiceClient | None = None
	policy: RetryPolicy = field(default_factory=RetryPolicy.from_config)
	rng: random.Random = field(default_factory=random.Random)

	def fallback_prompt(self) -> str:
		return self.rng.choice(PROMPT_POOL)

	async def generate(
		self,
		round_number: int,
		previous_prompts: list[str] | None = None,
		previous_responses: list[dict[str, str]] | None = None,
	) -> str:
		"""Ask the AI service for a prompt. Raises ProviderError."""
		if self.client is None:
			raise ProviderError("No AI service configured")
		body = await self.client.generate(
			"generate_prompt",
			{
				"round": round_number,
				"previousPrompts": previous_prompts or [],
				"responses": previous_responses or [],
			},
			{"temperature": 0.9, "maxTokens": 100},
		)
		prompt = (body.get("result") or {}).get("prompt") or body.get("prompt")
		if not isinstance(prompt, str) or not prompt.strip():
			raise ProviderError(f"AI service returned no prompt: {body!r}")
		return prompt.strip()

	async def next_prompt(
		self,
		round_number: int,
		previous_prompts: list[str] | None = None,
		previous_responses: list[dict[str, str]] | None = None,
	) -> str:
		"""Prompt for `round_number`; never fails."""
		if self.client is None:
			return self.fallback_prompt()
		try:
			return await call_with_retry(
				lambda: self.generate(round_number, previous_prompts, previous_responses),
				self.policy,
				retry_on=(ProviderError,),
				description=f"prompt generation for round {round_number}",
			)
		except ProviderError as exc:
			logger.warning(f"[PROMPT] Falling back to static prompt pool for round {round_number}: {exc}")
			return self.fallback_prompt()


@dataclass
class ResponseContext:
	round_number: int
	human_current: str | None = None
	human_previous: list[str] = field(default_factory=list)
	previous_ai_responses: list[str] = field(default_factory=list)
	persona_prompt: str | None = None

	def to_payload(self) -> dict[str, Any]:
		return {
			"round": self.round_number,
			"humanResponses": {"current": self.human_current, "previous": self.human_previous},
			"previousAIResponses": self.previous_ai_responses,
			"personaPrompt": self.persona_prompt,
		}


@dataclass
class ResponseProvider:
	client: AIServiceClient | None = None
	policy: RetryPolicy = field(default_factory=RetryPolicy.from_config)
	rng: random.Random = field(default_factory=random.Random)

	async def generate(self, prompt: str, personality: str | None, context: ResponseContext) -> str:
		"""One attempt at an AI answer. Raises ProviderError."""
		if self.client is None:
			raise ProviderError("No AI service configured")
		body = await self.client.generate(
			"robot_response",
			{
				"personality": Personality.parse(personality).value,
				"prompt": prompt,
				"context": context.to_payload(),
			},
			{"temperature": 0.85, "maxTokens": 150},
		)
		if not body.get("success") or not (body.get("result") or {}).get("response"):
			raise ProviderError(f"AI service response missing expected fields: {body!r}")
		return str(body["result"]["response"]).strip()

	async def respond(self, prompt: str, personality: str | None, context: ResponseContext) -> tuple[str, bool]:
		"""Answer `prompt`, returning `(text, used_fallback)`; never fails."""
		if self.client is not None:
			try:
				text = await call_with_retry(
					lambda: self.generate(prompt, personality, context),
					self.policy,
					retry_on=(ProviderError,),
					description=f"AI response for round {context.round_number}",
				)
				return text, False
			except ProviderError as exc:
				logger.warning(f"[RESPONDER] Using fallback response for round {context.round_number}: {exc}")
		return fallback_response(personality, self.rng), True
