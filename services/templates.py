"""Match templates: how many humans and AI participants a match is played with."""
from __future__ import annotations

from dataclasses import dataclass, asdict

import config

DEFAULT_TEMPLATE = "classic_1v3"


@dataclass(frozen=True)
class MatchTemplate:
	type: str
	name: str
	description: str
	required_humans: int
	required_ai: int
	is_public: bool = True
	is_admin_only: bool = False
	response_time_limit: int = config.RESPONSE_TIME_LIMIT

	@property
	def total_participants(self) -> int:
		return self.required_humans + self.required_ai

	def to_dict(self) -> dict:
		data = asdict(self)
		data["total_participants"] = self.total_participants
		return data


TEMPLATES: dict[str, MatchTemplate] = {
	t.type: t
	for t in (
		MatchTemplate("classic_1v3", "Classic Match", "One human tries to blend in with three AI players", 1, 3),
		MatchTemplate("duo_2v2", "Duo Match", "Two humans compete alongside two AI players", 2, 2),
		MatchTemplate(
			"admin_custom",
			"Admin Match",
			"Custom match configuration for testing",
			1,
			3,
			is_public=False,
			is_admin_only=True,
			response_time_limit=60,
		),
		MatchTemplate("trio_3v3", "Trio Match", "Three humans compete with three AI players", 3, 3),
		MatchTemplate("solo_1v5", "Solo Challenge", "One human tries to blend in with five AI players", 1, 5),
		MatchTemplate("duel_2v1", "Duel Match", "Two humans face off against one AI player", 2, 1),
		MatchTemplate("mega_4v4", "Mega Match", "Four humans compete with four AI players", 4, 4),
	)
}


def get_template(template_type: str | None) -> MatchTemplate:
	"""Look up a template; `None` selects the classic four-player match.

	Raises:
		ValueError: unknown template type.
	"""
	key = template_type or DEFAULT_TEMPLATE
	try:
		return TEMPLATES[key]
	except KeyError:
		raise ValueError(f"Invalid template type: {template_type}") from None


def public_templates() -> list[MatchTemplate]:
	return [t for t in TEMPLATES.values() if t.is_public]
