"""
CORE App - Domain errors shared by every DysaEats app.

Each error carries a machine `code` and the HTTP `status_code` the API
answers with. Views turn them into {"error": ..., "code": ...} bodies
through `domain_error_response`.
"""

from rest_framework import status
from rest_framework.response import Response


class DomainError(Exception):
    """Base class for business rule failures."""

    code = 'domain_error'
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Operación no permitida'

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidTransition(DomainError):
    """Requested order transition is not allowed from the current state."""

    code = 'invalid_transition'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Transición de estado no permitida'

    def __init__(self, current_state: str, message: str = None):
        self.current_state = current_state
        super().__init__(
            message or f"{self.default_message} (estado actual: {current_state})"
        )


class Forbidden(DomainError):
    """Actor is not allowed to perform the operation."""

    code = 'forbidden'
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'No tienes permiso para realizar esta acción'


class NotFound(DomainError):
    code = 'not_found'
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Recurso no encontrado'


class TransientIOFailure(DomainError):
    """A collaborator (database, channel layer, GPS, push) failed for now."""

    code = 'transient_io_failure'
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = 'Servicio temporalmente no disponible'


def domain_error_response(error: DomainError, **extra) -> Response:
    """Build the JSON error response for a domain error."""
    body = {'error': error.message, 'code': error.code}
    body.update(extra)
    return Response(body, status=error.status_code)
