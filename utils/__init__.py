"""Utility helpers used across the project.

Make commonly used helpers available at the package level for convenience.

Exports:
- time helpers: `now_utc`, `now_iso`, `to_iso`, `parse_iso`, `seconds_since`
- validation helpers: `is_valid_name`, `is_valid_invite_code`, `clean_response_text`, `sanitize_json`, `VALID_NAME_RE`
"""

from .time import now_utc, now_iso, to_iso, parse_iso, seconds_since
from .validation import (
	is_valid_name,
	is_valid_invite_code,
	clean_response_text,
	sanitize_json,
	VALID_NAME_RE,
)

__all__ = [
	"now_utc",
	"now_iso",
	"to_iso",
	"parse_iso",
	"seconds_since",
	"is_valid_name",
	"is_valid_invite_code",
	"clean_response_text",
	"sanitize_json",
	"VALID_NAME_RE",
]
