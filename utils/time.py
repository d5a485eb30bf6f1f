"""Time utilities: timezone-aware helpers and ISO formatting/parsing.

Match documents store instants as ISO8601 strings in UTC so that they sort
lexicographically; these helpers keep that consistent across modules.
"""
from datetime import datetime, timezone
from typing import Optional


def now_utc() -> datetime:
	"""Return current UTC datetime with tzinfo set."""
	return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
	"""Serialize a datetime to ISO8601 string (UTC)."""
	if dt.tzinfo is None:
		dt = dt.replace(tzinfo=timezone.utc)
	return dt.astimezone(timezone.utc).isoformat()


def now_iso() -> str:
	return to_iso(now_utc())


def parse_iso(s: str | None) -> Optional[datetime]:
	"""Parse an ISO8601 string into a timezone-aware datetime when possible.

	Returns None on obvious parse failures.
	"""
	if not s:
		return None
	try:
		# Python's fromisoformat handles most variants; tolerate trailing Z.
		if s.endswith("Z"):
			s = s[:-1] + "+00:00"
		dt = datetime.fromisoformat(s)
	except ValueError:
		return None
	if dt.tzinfo is None:
		dt = dt.replace(tzinfo=timezone.utc)
	return dt


def seconds_since(s: str | None, now: datetime | None = None) -> float | None:
	"""Seconds elapsed since the ISO timestamp `s`, or None if it cannot be parsed."""
	then = parse_iso(s)
	if then is None:
		return None
	return ((now or now_utc()) - then).total_seconds()
