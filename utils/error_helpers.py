"""
Error handling helpers
Context manager that logs failures of an operation with its context
and lets the exception propagate
"""

import logging

from .logging_config import log_error

logger = logging.getLogger(__name__)


class log_exceptions:
    """
    Context manager that logs exceptions with custom context

    Expected domain errors (anything exposing a `code`, i.e. RifaError) are
    logged as warnings without a traceback; anything else is logged as an
    error with the traceback. The exception is never suppressed.

    Usage:
        with log_exceptions("selling ticket", rifa_id=rifa_id, numero=3):
            ledger.sell(...)
    """

    def __init__(self, operation, log=None, **context):
        self.operation = operation
        self.log = log or logger
        self.context = context

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            return False

        context_str = ', '.join(f"{k}={v}" for k, v in self.context.items())
        code = getattr(exc_val, 'code', None)
        if isinstance(code, str):
            self.log.warning(f"{self.operation} failed [{context_str}]: {code}: {exc_val}")
        else:
            log_error(self.log, exc_val, f"Error during {self.operation} [{context_str}]")
        return False  # Don't suppress exception
