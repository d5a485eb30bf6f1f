"""Behaviour profiles for AI participants and their canned fallback answers."""
from __future__ import annotations

from enum import Enum
import random


class Personality(str, Enum):
	"""Known response-provider profiles.

	`CUSTOM` is the extension point: the participant carries its own
	free-text `personaPrompt` which is forwarded to the response-provider.
	"""

	POETIC = "poetic"
	ANALYTICAL = "analytical"
	WHIMSICAL = "whimsical"
	CUSTOM = "custom"

	@classmethod
	def parse(cls, value: str | None) -> "Personality":
		if value is None:
			return cls.CUSTOM
		try:
			return cls(value.strip().lower())
		except ValueError:
			return cls.CUSTOM


# AI participants cycle through these in order of their identity
ROTATION = (Personality.POETIC, Personality.ANALYTICAL, Personality.WHIMSICAL)

BOT_NAMES = (
	"Sundown", "Bandit", "Maverick", "Beast", "Boomer", "Buzz", "Casper",
	"Caveman", "Chipper", "Cougar", "Fury", "Gerwin", "Goose", "Heater",
	"Hollywood", "Iceman", "Jester", "Khan", "Merlin", "Outlaw", "Rainmaker",
)

FALLBACK_RESPONSES: dict[Personality, tuple[str, ...]] = {
	Personality.POETIC: (
		"Like whispers in the twilight, it dances on the edge of perception",
		"A symphony of shadows, playing in minor keys",
		"Crystalline fragments of yesterday, scattered across tomorrow",
		"It breathes in colors that have no names",
		"Soft as moth wings against the window of time",
	),
	Personality.ANALYTICAL: (
		"Approximately 42 decibels of introspective resonance",
		"The quantifiable essence measures 3.7 on the emotional scale",
		"Statistical analysis suggests a correlation with ambient frequencies",
		"Data indicates a wavelength between visible and invisible spectrums",
		"Empirically speaking, it registers as a null hypothesis of sensation",
	),
	Personality.WHIMSICAL: (
		"Like a disco ball made of butterflies!",
		"It's the giggles of invisible unicorns, obviously",
		"Tastes like purple mixed with the sound of Tuesday",
		"Bouncy castle vibes but for your feelings",
		"Imagine a kazoo orchestra playing underwater ballet",
	),
	Personality.CUSTOM: (
		"That's an interesting perspective to consider",
		"I find myself pondering the deeper meaning here",
		"There's something uniquely captivating about this",
		"It resonates in unexpected ways",
		"The essence of it speaks volumes",
	),
}


def personality_for(index: int) -> Personality:
	"""Profile for the `index`-th AI participant of a match."""
	return ROTATION[index % len(ROTATION)]


def pick_bot_names(count: int, rng: random.Random | None = None) -> list[str]:
	rng = rng or random.Random()
	names = rng.sample(BOT_NAMES, k=min(count, len(BOT_NAMES)))
	# more AI than names: suffix repeats
	while len(names) < count:
		names.append(f"{rng.choice(BOT_NAMES)} {len(names) + 1}")
	return names


def fallback_response(personality: str | None, rng: random.Random | None = None) -> str:
	pool = FALLBACK_RESPONSES[Personality.parse(personality)]
	return (rng or random).choice(pool)
