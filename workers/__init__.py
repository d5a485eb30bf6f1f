"""Workers package: Celery app and background task definitions.

This package contains the Celery application instance and task modules.

Public API:
- `celery_app`: Celery application instance and configuration
- `tasks`: task implementations (e.g. `generate_ai_response`)
"""

# Import tasks early to register Celery decorators before lazy loading
from . import tasks as _tasks_module


# Lazy imports to avoid circular dependencies
def __getattr__(name):
    if name == "celery_app":
        from .celery_app import app
        return app
    elif name == "tasks":
        return _tasks_module
    elif name in (
        "generate_ai_response",
        "handle_state_update",
        "delete_stale_matches",
    ):
        return getattr(_tasks_module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = [
    "celery_app",
    "tasks",
    "generate_ai_response",
    "handle_state_update",
    "delete_stale_matches",
]
