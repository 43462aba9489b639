"""
errors.py
Exception taxonomy for the evaluator.

Only AuthError and PayloadValidationError are fatal to a webhook request.
Everything else degrades to a rendered explanation with HTTP 200.
"""


class EvaluatorError(Exception):
    """Base class for all evaluator errors."""


class AuthError(EvaluatorError):
    """Missing/invalid webhook signature or missing shared secret."""


class PayloadValidationError(EvaluatorError):
    """Malformed webhook body."""

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = errors or []


class UpstreamFetchError(EvaluatorError):
    """Help Scout auth or API call failed."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class EvaluationEngineError(EvaluatorError):
    """The external scorer failed, timed out or returned garbage."""


class PersistenceError(EvaluatorError):
    """The ledger store is unreachable or rejected a write."""


class RequestTimeoutError(EvaluatorError):
    """Webhook handling exceeded the request timeout."""
