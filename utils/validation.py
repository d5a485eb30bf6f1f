"""Validation and sanitization helpers.

This module provides lightweight input validation used by route handlers.
"""
from typing import Any
import regex as re


# Allow: any Unicode letter/mark/number, spaces, plus a small, explicit set of name punctuation
VALID_NAME_RE = re.compile(r"^[\p{L}\p{M}\p{N} .'\-`’·()]+$", flags=re.UNICODE)

# Invite codes are six characters from A-Z0-9
INVITE_CODE_RE = re.compile(r"^[A-Z0-9]{6}$")

MAX_RESPONSE_LENGTH = 2000


def is_valid_name(s: str) -> bool:
	"""Return True if `s` is a reasonable display name for a participant.

	- Strips and enforces a sensible maximum length.
	- Uses Unicode-aware character class matching.
	"""
	if not s:
		return False
	if s.isspace():
		return False
	s = s.strip()
	if len(s) == 0 or len(s) > 100:
		return False
	return bool(VALID_NAME_RE.match(s))


def is_valid_invite_code(s: str) -> bool:
	return bool(s) and bool(INVITE_CODE_RE.match(s.upper()))


def clean_response_text(s: str) -> str:
	"""Trim a submitted answer and cap its length."""
	return s.strip()[:MAX_RESPONSE_LENGTH]


def sanitize_json(obj: Any, *, _depth: int = 0, _max_depth: int = 10) -> Any:
	"""Recursively sanitize an input JSON-like structure.

	- Rejects keys that start with '$' or contain '..'.
	- Enforces max depth to avoid excessive recursion.
	- Returns a cleaned structure containing only dict/list/primitives.
	"""
	if _depth > _max_depth:
		raise ValueError("Input too deeply nested")

	if isinstance(obj, dict):
		clean = {}
		for k, v in obj.items():
			if not isinstance(k, str):
				continue
			if k.startswith("$") or ".." in k:
				continue
			clean[k] = sanitize_json(v, _depth=_depth + 1, _max_depth=_max_depth)
		return clean
	elif isinstance(obj, list):
		return [sanitize_json(v, _depth=_depth + 1, _max_depth=_max_depth) for v in obj]
	elif isinstance(obj, (str, int, float, bool)) or obj is None:
		return obj
	else:
		# Unknown types are rejected
		raise ValueError("Unsupported JSON value type")
