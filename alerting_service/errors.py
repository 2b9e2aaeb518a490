"""Exception taxonomy for the alerting pipeline.

Request handlers in `main.py` turn these into HTTP responses:
ValidationError -> 400, NotFoundError -> 404, StateConflictError -> 409,
PersistenceError -> 500. DispatchError never leaves the dispatcher.
"""

from typing import Dict, List, Optional


class AlertingError(Exception):
    code = "alerting_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AlertingError):
    """Malformed or out-of-range input, rejected before any write."""

    code = "validation_error"
    status_code = 400

    def __init__(self, message: str, details: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.details = details or []


class NotFoundError(AlertingError):
    code = "not_found"
    status_code = 404


class StateConflictError(AlertingError):
    """Lifecycle transition attempted from the wrong current state."""

    code = "state_conflict"
    status_code = 409


class PersistenceError(AlertingError):
    code = "persistence_error"
    status_code = 500


class DispatchError(AlertingError):
    code = "dispatch_error"
    status_code = 502
