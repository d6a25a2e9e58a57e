"""
Error taxonomy for the reconciliation workflow.

Every failure is recoverable by reviewer action (retry, reset, modify).
Each class carries the HTTP status the API layer answers with.
"""


class ReconcilerError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ReconcilerError):
    """Bad input shape: unsupported file, blank custom value, unknown option."""
    status_code = 422


class NotFoundError(ReconcilerError):
    """Rule, decision or batch does not exist."""
    status_code = 404


class CollaboratorError(ReconcilerError):
    """The detector, processor, exporter or batch source failed."""
    status_code = 502


class ConflictError(ReconcilerError):
    """Operation not allowed in the current state without an explicit override."""
    status_code = 409
