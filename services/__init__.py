"""Services package: the pure match rules and the AI-service collaborators.

Modules here never touch the match store directly; the route helpers in
`routes.matches_helpers` combine them with a store.
"""

from .identity import generate_identities, next_identity, allocate, MIN_PARTICIPANTS, MAX_PARTICIPANTS
from .shuffle import shuffle, presentation_seed, presentation_order
from .scoring import score_round, match_totals, correct_identity, POINTS_CORRECT, POINTS_INCORRECT
from .templates import MatchTemplate, TEMPLATES, DEFAULT_TEMPLATE, get_template, public_templates
from .personalities import Personality, personality_for, pick_bot_names, fallback_response
from .retry import RetryPolicy, call_with_retry
from .providers import (
	AIServiceClient,
	PromptProvider,
	ResponseProvider,
	ResponseContext,
	ProviderError,
	default_client,
)
from .fanout import AIFanoutCoordinator

__all__ = [
	"generate_identities",
	"next_identity",
	"allocate",
	"MIN_PARTICIPANTS",
	"MAX_PARTICIPANTS",
	"shuffle",
	"presentation_seed",
	"presentation_order",
	"score_round",
	"match_totals",
	"correct_identity",
	"POINTS_CORRECT",
	"POINTS_INCORRECT",
	"MatchTemplate",
	"TEMPLATES",
	"DEFAULT_TEMPLATE",
	"get_template",
	"public_templates",
	"Personality",
	"personality_for",
	"pick_bot_names",
	"fallback_response",
	"RetryPolicy",
	"call_with_retry",
	"AIServiceClient",
	"PromptProvider",
	"ResponseProvider",
	"ResponseContext",
	"ProviderError",
	"default_client",
	"AIFanoutCoordinator",
]
