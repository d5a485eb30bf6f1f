"""
Shared exception definitions for all stores and match rules.

Hierarchy:
- StoreError (base for all store exceptions)
  - MatchStoreError (match-specific errors, including rule violations)
  - SessionStoreError (connection session errors)

Every class carries a `retryable` flag. Celery tasks read it to decide
between retrying and returning a failure result.
"""


# =========================
# Base exception
# =========================

class StoreError(Exception):
    """Base exception for all store-related errors."""
    retryable: bool = True


class MatchNotFound(StoreError):
    retryable = False


class UnexpectedResult(StoreError):
    retryable = True
    # storage returned something that should be impossible (corrupt document, broken transaction)


# =========================
# MatchStore exceptions
# =========================

class MatchStoreError(StoreError):
    """Base exception for match store errors."""
    retryable = True


class MatchAlreadyExists(MatchStoreError):
    retryable = False


class VersionConflict(MatchStoreError):
    """Conditional write lost against a concurrent writer."""
    retryable = True


class MatchFull(MatchStoreError):
    retryable = False


class MatchNotJoinable(MatchStoreError):
    retryable = False


class PlayerAlreadyJoined(MatchStoreError):
    retryable = False


class InvalidRound(MatchStoreError):
    retryable = False


class UnknownParticipant(MatchStoreError):
    retryable = False


class IneligibleVoter(MatchStoreError):
    retryable = False


class InvalidState(MatchStoreError):
    retryable = False


# =========================
# SessionStore exceptions
# =========================

class SessionStoreError(StoreError):
    """Base exception for session store errors."""
    retryable = False


class SessionNotFound(SessionStoreError):
    retryable = False
