"""
Rifa error taxonomy

Every operation either returns a result or raises one of these.
The HTTP layer maps them to responses using `code` and `retryable`.
"""


class RifaError(Exception):
    """Base class for all raffle errors"""

    code = "rifa_error"
    retryable = False

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        return {
            'success': False,
            'error': self.code,
            'message': self.message,
            'retryable': self.retryable,
            'details': self.details,
        }


# ============================================
# VALIDATION (client-correctable)
# ============================================

class ValidationError(RifaError):
    code = "validation_error"


class InvalidTicketNumber(ValidationError):
    code = "invalid_ticket_number"


class InvalidMethod(ValidationError):
    code = "invalid_method"


class MissingReference(ValidationError):
    code = "missing_reference"


class MissingReason(ValidationError):
    code = "missing_reason"


class InvalidRifaData(ValidationError):
    code = "invalid_rifa_data"


# ============================================
# CONFLICT (concurrent-write collisions, retry after refetch)
# ============================================

class ConflictError(RifaError):
    code = "conflict"
    retryable = True


class TicketAlreadySold(ConflictError):
    code = "ticket_already_sold"


class AlreadyFinalizedError(ConflictError):
    code = "already_finalized"


class ConcurrentUpdateError(ConflictError):
    code = "concurrent_update"


# ============================================
# STATE (precondition violated for the current phase)
# ============================================

class StateError(RifaError):
    code = "invalid_state"


class RaffleClosed(StateError):
    code = "raffle_closed"


class RaffleNotOpenError(StateError):
    code = "raffle_not_open"


class NoTicketsSoldError(StateError):
    code = "no_tickets_sold"


class RaffleNotDrawnError(StateError):
    code = "raffle_not_drawn"


class DeletionNotAllowed(StateError):
    code = "deletion_not_allowed"


# ============================================
# EXTERNAL DEPENDENCIES
# ============================================

class ExternalDependencyError(RifaError):
    code = "external_dependency_error"
    retryable = True


class ExternalSourceUnavailable(ExternalDependencyError):
    code = "external_source_unavailable"


# ============================================
# NOT FOUND
# ============================================

class NotFoundError(RifaError):
    code = "not_found"


class RifaNotFound(NotFoundError):
    code = "rifa_not_found"
