"""Data models used by the application.

Split into:
- `api_models`: Pydantic models used for request/response validation
- `domain_models`: TypedDicts describing the match document used in business logic

Import submodules to make them available as `models.api_models`.
"""

from . import api_models, domain_models

# Re-export selected API models (Pydantic models used for request/response)
from .api_models import (
	CreateMatchRequest,
	SubmitResponseRequest,
	SubmitVoteRequest,
	JoinMatchRequest,
	MatchActionResponse,
	MatchHistoryResponse,
)

# Re-export domain models (TypedDicts). The pydantic `StateUpdateMessage`
# stays in `api_models` to avoid a name collision with the TypedDict.
from .domain_models import (
	Identity,
	Participant,
	Round,
	Match,
	StateUpdateMessage,
)

__all__ = [
	# submodules
	"api_models",
	"domain_models",
	# api models
	"CreateMatchRequest",
	"SubmitResponseRequest",
	"SubmitVoteRequest",
	"JoinMatchRequest",
	"MatchActionResponse",
	"MatchHistoryResponse",
	# domain models
	"Identity",
	"Participant",
	"Round",
	"Match",
	"StateUpdateMessage",
]
